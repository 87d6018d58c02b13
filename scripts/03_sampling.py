"""
03_sampling.py
==============
Fase 3: Muestreo estratificado por transicion y split train/test.

Estrategia: muestreo aleatorio estratificado del stack (n puntos por estrato
de transicion), una columna aleatoria uniforme por punto y un split por
umbral fijo (random <= 0.8 -> train, random > 0.8 -> test). El split se
puede reconstruir solo con la columna aleatoria; es estable unicamente si
esa columna se genera con la misma semilla.
"""

import os
import sys
from dataclasses import asdict, dataclass
from typing import Optional

import ee
import numpy as np
import pandas as pd

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from gee_config import ANALYSIS_PARAMS
from scripts.utils import DataError, EmptyPartitionError, getinfo, log

RANDOM_COLUMN = 'random'
# getInfo() limit for FeatureCollections
MAX_FETCH = 5000


# ============================================================
# REGISTROS
# ============================================================

@dataclass(frozen=True)
class FeatureRecord:
    start: int
    transition: int
    elevation: float
    year: float
    random: float
    end: Optional[int] = None

    @classmethod
    def from_properties(cls, props):
        """Construye un registro desde el diccionario de propiedades del backend."""
        required = ['start', 'transition', 'elevation', 'year', RANDOM_COLUMN]
        missing = [k for k in required if props.get(k) is None]
        if missing:
            raise DataError(f"Sample record missing fields {missing}: {props}")
        try:
            record = cls(
                start=int(props['start']),
                transition=int(props['transition']),
                elevation=float(props['elevation']),
                year=float(props['year']),
                random=float(props[RANDOM_COLUMN]),
                end=None if props.get('end') is None else int(props['end']),
            )
        except (TypeError, ValueError) as e:
            raise DataError(f"Invalid sample record {props}: {e}") from e
        if not 0.0 <= record.random < 1.0:
            raise DataError(f"Random field outside [0, 1): {record.random}")
        return record

    def as_properties(self):
        props = asdict(self)
        if props['end'] is None:
            del props['end']
        return props

    def values(self, names):
        return [getattr(self, n) for n in names]


# ============================================================
# MUESTREO ESTRATIFICADO (numpy)
# ============================================================

def random_column(n, seed=0):
    """Valores uniformes en [0, 1), uno por muestra."""
    return np.random.default_rng(seed).random(n)


def stratified_sample(features, n_points=None, class_band='transition', seed=0, nodata=0):
    """
    Muestrea hasta ``n_points`` pixeles de cada estrato de ``class_band``.

    Se omiten pixeles con estrato nodata o elevacion no finita. Retorna una
    lista de FeatureRecord con columna aleatoria reproducible por semilla.
    """
    n_points = n_points or ANALYSIS_PARAMS['n_points']
    # Flujos independientes: seleccion por estrato y columna aleatoria
    draw_seed, random_seed = np.random.SeedSequence(seed).spawn(2)
    rng = np.random.default_rng(draw_seed)

    strata = np.asarray(features[class_band]).ravel()
    valid = strata != nodata
    if 'elevation' in features:
        valid &= np.isfinite(np.asarray(features['elevation'], dtype=float).ravel())

    picked = []
    for value in np.unique(strata[valid]):
        idx = np.flatnonzero(valid & (strata == value))
        picked.append(np.sort(rng.choice(idx, size=min(n_points, idx.size), replace=False)))
    idx = np.concatenate(picked) if picked else np.array([], dtype=int)

    bands = {name: np.asarray(arr).ravel()[idx] for name, arr in features.items()}
    rand = random_column(idx.size, random_seed)
    return [
        FeatureRecord.from_properties(
            dict({name: values[i] for name, values in bands.items()}, random=rand[i]))
        for i in range(idx.size)
    ]


# ============================================================
# SPLIT TRAIN / TEST
# ============================================================

def check_threshold(threshold=None):
    """Umbral del split; debe estar en (0, 1) para que ambas particiones existan."""
    threshold = ANALYSIS_PARAMS['train_threshold'] if threshold is None else threshold
    if not 0.0 < threshold < 1.0:
        raise ValueError(f"Split threshold must be in (0, 1), got {threshold}")
    return threshold


def split_records(records, threshold=None):
    """random <= threshold -> train, random > threshold -> test."""
    threshold = check_threshold(threshold)
    train = [r for r in records if r.random <= threshold]
    test = [r for r in records if r.random > threshold]
    return train, test


def report_split(n_train, n_test):
    """Registra el tamano de cada particion; una particion vacia es un error."""
    log(f"    Sample train: {n_train}")
    log(f"    Sample test: {n_test}")
    if n_train == 0:
        raise EmptyPartitionError("Train partition is empty; cannot fit a classifier")
    if n_test == 0:
        raise EmptyPartitionError("Test partition is empty; cannot evaluate the classifier")


def records_to_frame(train, test):
    """Muestras con columna 'partition', para el CSV."""
    rows = [dict(r.as_properties(), partition='train') for r in train]
    rows += [dict(r.as_properties(), partition='test') for r in test]
    return pd.DataFrame(rows)


# ============================================================
# VERSION EARTH ENGINE
# ============================================================

def stratified_sample_image(variables, region, n_points=None, scale=None, seed=0,
                            class_band='transition'):
    """stratifiedSample() del stack mas una columna aleatoria con semilla."""
    n_points = n_points or ANALYSIS_PARAMS['n_points']
    scale = scale or ANALYSIS_PARAMS['scale']
    samples = variables.stratifiedSample(
        numPoints=n_points,
        classBand=class_band,
        scale=scale,
        region=region,
        seed=seed,
        geometries=False,
    )
    return samples.randomColumn(RANDOM_COLUMN, seed)


def split_collection(samples, threshold=None):
    threshold = check_threshold(threshold)
    train = samples.filter(ee.Filter.lte(RANDOM_COLUMN, threshold))
    test = samples.filter(ee.Filter.gt(RANDOM_COLUMN, threshold))
    return train, test


def records_from_collection(collection, limit=MAX_FETCH, label='samples'):
    """Descarga hasta ``limit`` features y las valida como FeatureRecord."""
    info = getinfo(collection.limit(limit), label)
    return [FeatureRecord.from_properties(f['properties']) for f in info['features']]
