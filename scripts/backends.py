"""
Backends raster para el pipeline LULC 2033.

EarthEngineBackend ejecuta los pasos pesados en Google Earth Engine (assets,
stratifiedSample, smileRandomForest, reduceRegion agrupado).
LocalBackend ejecuta los mismos pasos sobre GeoTIFFs co-registrados con
rasterio, numpy y scikit-learn.

Ambos exponen los mismos metodos, asi run_analysis.py no depende de donde
viven los rasters.
"""

import os
import sys
import importlib

import ee
import numpy as np
import rasterio

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from gee_config import ANALYSIS_PARAMS, COLLECTIONS, PERIODS
from scripts.utils import (
    ConfigurationError, export_image_to_drive, get_change_vis_params, get_lulc_vis_params,
    get_lulc_vis_properties, get_study_area, getinfo, log
)

features_mod = importlib.import_module('scripts.02_feature_assembly')
sampling_mod = importlib.import_module('scripts.03_sampling')
classification_mod = importlib.import_module('scripts.04_classification')
area_mod = importlib.import_module('scripts.05_area_statistics')
visualization_mod = importlib.import_module('scripts.06_visualization')

NODATA = 0


# ============================================================
# GOOGLE EARTH ENGINE
# ============================================================

class EarthEngineBackend:
    name = 'gee'

    def __init__(self, catalog, assets=None, scale=None, best_effort=None,
                 drive_folder='lulc_prediction_2033'):
        self.catalog = catalog
        self.assets = assets or (PERIODS['start']['asset'], PERIODS['end']['asset'])
        self.scale = scale or ANALYSIS_PARAMS['scale']
        self.best_effort = ANALYSIS_PARAMS['best_effort'] if best_effort is None else best_effort
        self.drive_folder = drive_folder
        self.region = None
        self.vis_properties = get_lulc_vis_properties(
            {e.code: {'name': e.name, 'color': e.color} for e in catalog})

    def load_epochs(self):
        lulc_from = ee.Image(self.assets[0]).set(self.vis_properties)
        lulc_to = ee.Image(self.assets[1]).set(self.vis_properties)
        self.region = get_study_area(lulc_from)
        return lulc_from, lulc_to

    def load_elevation(self):
        return ee.Image(COLLECTIONS['srtm']).clip(self.region).rename('elevation')

    def encode(self, encoder, lulc_from, lulc_to):
        return encoder.compute_image(lulc_from, lulc_to)

    def training_features(self, lulc_from, lulc_to, transition, elevation, year):
        return features_mod.assemble_training_image(lulc_from, lulc_to, transition, elevation, year)

    def forecast_features(self, lulc_previous, lulc_latest, transition, elevation, year):
        return features_mod.assemble_forecast_image(
            lulc_previous, lulc_latest, transition, elevation, year)

    def sample(self, features, n_points, seed=0):
        return sampling_mod.stratified_sample_image(
            features, self.region, n_points=n_points, scale=self.scale, seed=seed)

    def split(self, samples, threshold):
        return sampling_mod.split_collection(samples, threshold)

    def count(self, partition):
        return int(getinfo(partition.size(), 'partition_size'))

    def sample_frame(self, train, test):
        return sampling_mod.records_to_frame(
            sampling_mod.records_from_collection(train, label='train_records'),
            sampling_mod.records_from_collection(test, label='test_records'),
        )

    def classifier(self, n_trees, seed=0):
        return classification_mod.EarthEngineRandomForest(n_trees=n_trees, seed=seed)

    def finish_prediction(self, prediction):
        return prediction.set(self.vis_properties)

    def area_records(self, lulc, year):
        return area_mod.area_records_image(
            lulc, year, self.region, self.catalog,
            scale=self.scale, best_effort=self.best_effort)

    def transition_areas(self, transition, encoder):
        return area_mod.transition_areas_image(
            transition, self.region, encoder, scale=self.scale, best_effort=self.best_effort)

    def render_maps(self, maps, changed_only, output_dir):
        """Registra las URLs de tiles de las capas LULC y del mapa de cambios."""
        classes = {e.code: {'name': e.name, 'color': e.color} for e in self.catalog}
        layers = [(f'LULC {year}', image, get_lulc_vis_params(classes))
                  for year, image in sorted(maps.items())]
        layers.append(('Land cover change map', changed_only, get_change_vis_params(classes)))

        urls = []
        for label, image, vis in layers:
            url = image.getMapId(vis)['tile_fetcher'].url_format
            log(f"    {label}: {url}")
            urls.append(url)
        return urls

    def save_prediction(self, prediction, changed_only, year, output_dir, export=False):
        """Exporta a Drive la prediccion y el mapa de cambios (solo con export)."""
        if not export:
            return []
        exports = [
            (prediction.toByte(), f'lulc_prediction_{year}'),
            (changed_only.toInt16(), 'lulc_transition_changed_only'),
        ]
        paths = []
        for image, description in exports:
            export_image_to_drive(image, description, self.drive_folder, self.region, self.scale)
            paths.append(f'drive:{self.drive_folder}/{description}')
        return paths


# ============================================================
# GEOTIFF LOCAL
# ============================================================

class LocalBackend:
    name = 'local'

    def __init__(self, catalog, lulc_from_path, lulc_to_path, dem_path):
        self.catalog = catalog
        self.paths = (lulc_from_path, lulc_to_path)
        self.dem_path = dem_path
        self.profile = None
        self.pixel_area = None

    @staticmethod
    def _read(path, dtype, fill):
        with rasterio.open(path) as src:
            data = src.read(1, masked=True)
            return data.astype(dtype).filled(fill), src.profile, src.transform, src.crs

    def _check_grid(self, path, transform, crs, shape):
        ref = self.profile
        if (shape != (ref['height'], ref['width']) or transform != ref['transform']
                or crs != ref['crs']):
            raise ConfigurationError(
                f"{path} is not co-registered with {self.paths[0]} "
                f"(shape {shape}, crs {crs}, transform {tuple(transform)[:6]})")

    def load_epochs(self):
        lulc_from, self.profile, transform, crs = self._read(self.paths[0], np.int32, NODATA)
        lulc_to, _, transform_to, crs_to = self._read(self.paths[1], np.int32, NODATA)
        self._check_grid(self.paths[1], transform_to, crs_to, lulc_to.shape)
        self.catalog.check_codes(lulc_from)
        self.catalog.check_codes(lulc_to)

        geographic = bool(crs is not None and crs.is_geographic)
        self.pixel_area = area_mod.pixel_area_grid(transform, lulc_from.shape, geographic)
        return lulc_from, lulc_to

    def load_elevation(self):
        elevation, _, transform, crs = self._read(self.dem_path, np.float64, np.nan)
        self._check_grid(self.dem_path, transform, crs, elevation.shape)
        return elevation

    def encode(self, encoder, lulc_from, lulc_to):
        result = encoder.compute(lulc_from, lulc_to)
        return result.full, result.changed_only

    def training_features(self, lulc_from, lulc_to, transition, elevation, year):
        return features_mod.assemble_training_features(lulc_from, lulc_to, transition, elevation, year)

    def forecast_features(self, lulc_previous, lulc_latest, transition, elevation, year):
        return features_mod.assemble_forecast_features(
            lulc_previous, lulc_latest, transition, elevation, year)

    def sample(self, features, n_points, seed=0):
        return sampling_mod.stratified_sample(features, n_points=n_points, seed=seed)

    def split(self, samples, threshold):
        return sampling_mod.split_records(samples, threshold)

    def count(self, partition):
        return len(partition)

    def sample_frame(self, train, test):
        return sampling_mod.records_to_frame(train, test)

    def classifier(self, n_trees, seed=0):
        return classification_mod.LocalRandomForest(n_trees=n_trees, seed=seed)

    def finish_prediction(self, prediction):
        return prediction

    def area_records(self, lulc, year):
        return area_mod.aggregate_area(lulc, self.pixel_area, year, self.catalog)

    def transition_areas(self, transition, encoder):
        return area_mod.transition_areas(transition, self.pixel_area, encoder)

    def render_maps(self, maps, changed_only, output_dir):
        figures = visualization_mod.plot_lulc_maps(
            maps, self.catalog, os.path.join(output_dir, 'figures', 'lulc_maps'))
        figures += visualization_mod.plot_change_map(
            changed_only, self.catalog, os.path.join(output_dir, 'figures', 'lulc_change_map'))
        return figures

    def save_prediction(self, prediction, changed_only, year, output_dir, export=False):
        path = os.path.join(output_dir, f'lulc_prediction_{year}.tif')
        profile = dict(self.profile, dtype='uint8', count=1, nodata=NODATA)
        os.makedirs(output_dir, exist_ok=True)
        with rasterio.open(path, 'w', **profile) as dst:
            dst.write(prediction.astype(np.uint8), 1)
        log(f"  >> Guardado: {os.path.basename(path)}")
        return [path]
