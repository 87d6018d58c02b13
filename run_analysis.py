"""
run_analysis.py
===============
Script maestro: deteccion de cambio LULC 2014 -> 2024 y prediccion 2033.

Stages:
  1. Carga de mapas LULC (2014, 2024) y elevacion SRTM
  2. Mapa de transiciones (from * 100 + to) + matriz de areas
  3. Stack de variables (start, end, transition, elevation, year)
  4. Muestreo estratificado por transicion + split 80/20
  5. Random Forest (50 arboles)
  6. Matriz de confusion, OA, Kappa
  7. Stack de variables 2033
  8. Prediccion LULC 2033
  9. Area por clase y año (2014, 2024, 2033) + tasas de cambio
 10. Figuras

Usage:
    python run_analysis.py                       # Google Earth Engine assets
    python run_analysis.py --backend local \\
        --lulc-from lulc_2014.tif --lulc-to lulc_2024.tif --dem srtm.tif
"""

import os
import sys
import time
import shutil
import argparse
import tempfile
import importlib
from datetime import datetime

PROJECT_DIR = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, PROJECT_DIR)

from gee_config import ANALYSIS_PARAMS, FEATURE_BANDS, LABEL_BAND, PERIODS, init_ee
from scripts.utils import OUTPUT_DIR, banner, log, save_json
from scripts.backends import EarthEngineBackend, LocalBackend

encoding_mod = importlib.import_module('scripts.01_transition_encoding')
sampling_mod = importlib.import_module('scripts.03_sampling')
area_mod = importlib.import_module('scripts.05_area_statistics')
visualization_mod = importlib.import_module('scripts.06_visualization')


def _publish(staging_dir, output_dir):
    """Mueve los productos de una corrida completa a output_dir."""
    for root, _, files in os.walk(staging_dir):
        target = os.path.join(output_dir, os.path.relpath(root, staging_dir))
        os.makedirs(target, exist_ok=True)
        for name in files:
            os.replace(os.path.join(root, name), os.path.join(target, name))


def run_pipeline(backend, encoder, params=None, output_dir=None):
    """
    Pasada lineal Load -> Encode -> Features -> Sample/Split -> Train ->
    Evaluate -> Forecast features -> Predict -> Areas -> Render.

    Los productos se escriben en un directorio temporal junto a output_dir y
    se mueven a output_dir solo si todas las etapas terminan. Cualquier error
    aborta la corrida sin tocar output_dir y llega intacto al llamador.
    """
    params = dict(ANALYSIS_PARAMS, **(params or {}))
    sampling_mod.check_threshold(params['train_threshold'])
    output_dir = os.path.abspath(output_dir or OUTPUT_DIR)
    parent = os.path.dirname(output_dir)
    os.makedirs(parent, exist_ok=True)
    staging_dir = tempfile.mkdtemp(prefix='.lulc_run_', dir=parent)
    try:
        summary = _run_stages(backend, encoder, params, staging_dir)
        summary = _relocate(summary, staging_dir, output_dir)
        save_json(summary, 'analysis_summary.json', staging_dir)
        _publish(staging_dir, output_dir)
    finally:
        shutil.rmtree(staging_dir, ignore_errors=True)
    log(f"\nCOMPLETED in {summary['time_min']:.1f} minutes -> {output_dir}")
    return summary


def _relocate(summary, staging_dir, output_dir):
    def move(path):
        if path and path.startswith(staging_dir):
            return os.path.join(output_dir, os.path.relpath(path, staging_dir))
        return path
    return dict(summary,
                prediction=[move(p) for p in summary['prediction']],
                figures=[move(p) for p in summary['figures']])


def _run_stages(backend, encoder, params, output_dir):
    t0 = time.time()

    year_from = PERIODS['start']['map_year']
    year_to = PERIODS['end']['map_year']
    year_forecast = PERIODS['forecast']['map_year']

    catalog = encoder.catalog
    save_json(encoder.transition_dictionary(), 'transition_catalog.json', output_dir)

    # ------------------------------------------------------------
    banner(f"STAGE 1: CARGA LULC {year_from} / {year_to} ({backend.name})")
    lulc_from, lulc_to = backend.load_epochs()
    elevation = backend.load_elevation()

    # ------------------------------------------------------------
    banner("STAGE 2: MAPA DE TRANSICIONES")
    transition, changed_only = backend.encode(encoder, lulc_from, lulc_to)
    log(f"  {len(encoder.transition_catalog())} transition codes")
    matrix = backend.transition_areas(transition, encoder)
    log("  Major transitions:")
    for _, v in area_mod.top_changes(matrix):
        log(f"    {v['from']} -> {v['to']}: {v['area_ha']:,.0f} ha")
    save_json(matrix, 'transition_areas.json', output_dir)

    # ------------------------------------------------------------
    banner("STAGE 3-4: VARIABLES, MUESTREO Y SPLIT")
    variables = backend.training_features(lulc_from, lulc_to, transition, elevation, year_to)
    log(f"  Stratified sample: {params['n_points']} points per transition "
        f"(scale={params['scale']}, seed={params['seed']})")
    samples = backend.sample(variables, params['n_points'], seed=params['seed'])
    train, test = backend.split(samples, params['train_threshold'])
    n_train, n_test = backend.count(train), backend.count(test)
    sampling_mod.report_split(n_train, n_test)
    backend.sample_frame(train, test).to_csv(os.path.join(output_dir, 'samples.csv'), index=False)

    # ------------------------------------------------------------
    banner(f"STAGE 5: RANDOM FOREST ({params['n_trees']} trees)")
    classifier = backend.classifier(params['n_trees'], seed=params['seed'])
    model = classifier.train(train, LABEL_BAND, FEATURE_BANDS)
    importance = classifier.feature_importance(model)
    sorted_imp = sorted(importance.items(), key=lambda x: x[1], reverse=True)
    log("  Feature importance: " + ", ".join(f"{k}:{v:.2f}" for k, v in sorted_imp))

    # ------------------------------------------------------------
    banner("STAGE 6: ACCURACY")
    cm = classifier.confusion_matrix(model, test, catalog.codes)
    metrics = dict(cm.to_dict(), n_training=n_train, n_validation=n_test,
                   n_trees=params['n_trees'], feature_importance=importance)
    log(f"  Accuracy: {metrics['overall_accuracy']:.4f} ({metrics['overall_accuracy']*100:.1f}%)")
    log(f"  Kappa: {metrics['kappa']}")
    save_json(metrics, 'classification_metrics.json', output_dir)

    # ------------------------------------------------------------
    banner(f"STAGE 7-8: PREDICCION {year_forecast}")
    variables_forecast = backend.forecast_features(
        lulc_from, lulc_to, transition, elevation, year_forecast)
    prediction = backend.finish_prediction(classifier.classify(model, variables_forecast))

    # ------------------------------------------------------------
    banner("STAGE 9: AREA POR CLASE")
    maps = {year_from: lulc_from, year_to: lulc_to, year_forecast: prediction}
    records = []
    for year in sorted(maps):
        year_records = backend.area_records(maps[year], year)
        total = sum(r.area_ha for r in year_records)
        log(f"  [{year}] total {total:,.1f} ha")
        for r in year_records:
            log(f"    {r.class_name}: {r.area_ha:,.1f} ha")
        records.extend(year_records)

    area_frame = area_mod.records_to_frame(records)
    area_frame.to_csv(os.path.join(output_dir, 'area_by_class.csv'), index=False)
    save_json([r.as_row() for r in records], 'area_by_class.json', output_dir)

    rates = {}
    for y1, y2 in [(year_from, year_to), (year_to, year_forecast)]:
        r = area_mod.compute_change_rates(area_mod.class_areas(records, y1),
                                          area_mod.class_areas(records, y2), y2 - y1, catalog)
        rates[f"{y1}-{y2}"] = {str(k): v for k, v in r.items()}
    save_json(rates, 'change_rates.json', output_dir)

    # ------------------------------------------------------------
    banner("STAGE 10: FIGURAS Y EXPORTACION")
    figures = visualization_mod.plot_area_chart(
        area_frame, catalog, os.path.join(output_dir, 'figures', 'lulc_area_chart'),
        title=f'LULC area changes {year_from} - {year_to} - {year_forecast}')
    figures += backend.render_maps(maps, changed_only, output_dir)
    # Las exportaciones a Drive salen solo cuando todo lo anterior termino
    prediction_paths = backend.save_prediction(prediction, changed_only, year_forecast,
                                               output_dir, export=params.get('export', False))

    elapsed = time.time() - t0
    return {
        'date': datetime.now().isoformat(),
        'backend': backend.name,
        'time_min': round(elapsed / 60, 2),
        'years': [year_from, year_to, year_forecast],
        'n_training': n_train,
        'n_validation': n_test,
        'overall_accuracy': metrics['overall_accuracy'],
        'kappa': metrics['kappa'],
        'prediction': prediction_paths,
        'figures': figures,
    }


def build_backend(args, catalog):
    if args.backend == 'local':
        missing = [n for n in ('lulc_from', 'lulc_to', 'dem') if not getattr(args, n)]
        if missing:
            raise SystemExit(f"--backend local requires: {', '.join('--' + m.replace('_', '-') for m in missing)}")
        return LocalBackend(catalog, args.lulc_from, args.lulc_to, args.dem)

    init_ee()
    return EarthEngineBackend(catalog, scale=args.scale)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='LULC change detection and 2033 prediction')
    parser.add_argument('--backend', choices=['gee', 'local'], default='gee')
    parser.add_argument('--lulc-from', help='GeoTIFF LULC at the start year (local backend)')
    parser.add_argument('--lulc-to', help='GeoTIFF LULC at the end year (local backend)')
    parser.add_argument('--dem', help='GeoTIFF elevation co-registered with the LULC maps')
    parser.add_argument('--n-points', type=int, default=ANALYSIS_PARAMS['n_points'])
    parser.add_argument('--n-trees', type=int, default=ANALYSIS_PARAMS['n_trees'])
    parser.add_argument('--threshold', type=float, default=ANALYSIS_PARAMS['train_threshold'])
    parser.add_argument('--scale', type=float, default=ANALYSIS_PARAMS['scale'])
    parser.add_argument('--seed', type=int, default=ANALYSIS_PARAMS['seed'])
    parser.add_argument('--output-dir', default=OUTPUT_DIR)
    parser.add_argument('--export', action='store_true',
                        help='Export the prediction and the change map to Google Drive (gee backend)')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    log("=" * 70)
    log("LULC CHANGE 2014-2024 Y PREDICCION 2033")
    log(f"Fecha: {datetime.now().strftime('%Y-%m-%d %H:%M')}")
    log("=" * 70)

    # Catalog checks happen before any backend call
    catalog = encoding_mod.ClassCatalog.from_config()
    encoder = encoding_mod.TransitionEncoder(catalog)
    backend = build_backend(args, catalog)
    params = {
        'n_points': args.n_points,
        'n_trees': args.n_trees,
        'train_threshold': args.threshold,
        'scale': args.scale,
        'seed': args.seed,
        'export': args.export,
    }
    return run_pipeline(backend, encoder, params, args.output_dir)


if __name__ == '__main__':
    main()
