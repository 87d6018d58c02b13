"""
02_feature_assembly.py
======================
Fase 2: Stack de variables predictoras para el modelo de cambio LULC.

Bandas:
- start:      LULC al inicio del intervalo
- end:        LULC al final del intervalo (solo entrenamiento, etiqueta)
- transition: mapa completo de transiciones (clase_origen * 100 + clase_destino)
- elevation:  elevacion SRTM
- year:       anio objetivo donde cambio el ultimo intervalo observado, 0 en el resto

El stack de prediccion reutiliza la ultima mascara de cambio observada como
ubicacion del cambio futuro: ``year`` para 2033 vale 2033 donde 2014 != 2024.
"""

import os
import sys
from collections import OrderedDict

import ee
import numpy as np

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from gee_config import LABEL_BAND
from scripts.utils import check_same_shape


class FeatureImage(OrderedDict):
    """Bandas con nombre (arrays numpy) sobre una misma grilla."""

    @property
    def shape(self):
        return next(iter(self.values())).shape

    def stack(self, bands=None):
        """Array float (filas, columnas, n_bandas) en el orden de bandas pedido."""
        bands = bands or list(self.keys())
        return np.stack([np.asarray(self[b], dtype=float) for b in bands], axis=-1)


def year_indicator(lulc_a, lulc_b, year):
    return np.where(np.asarray(lulc_a) != np.asarray(lulc_b), year, 0).astype(np.int32)


def assemble_training_features(lulc_from, lulc_to, transition, elevation, year):
    check_same_shape(lulc_from=lulc_from, lulc_to=lulc_to,
                     transition=transition, elevation=elevation)
    return FeatureImage([
        ('start', np.asarray(lulc_from)),
        (LABEL_BAND, np.asarray(lulc_to)),
        ('transition', np.asarray(transition)),
        ('elevation', np.asarray(elevation, dtype=float)),
        ('year', year_indicator(lulc_from, lulc_to, year)),
    ])


def assemble_forecast_features(lulc_previous, lulc_latest, transition, elevation, year):
    """Stack de prediccion: parte del mapa mas reciente, sin banda etiqueta."""
    check_same_shape(lulc_previous=lulc_previous, lulc_latest=lulc_latest,
                     transition=transition, elevation=elevation)
    return FeatureImage([
        ('start', np.asarray(lulc_latest)),
        ('transition', np.asarray(transition)),
        ('elevation', np.asarray(elevation, dtype=float)),
        ('year', year_indicator(lulc_latest, lulc_previous, year)),
    ])


# ============================================================
# VERSION EARTH ENGINE
# ============================================================

def assemble_training_image(lulc_from, lulc_to, transition, elevation, year):
    return ee.Image([
        lulc_from.rename('start'),
        lulc_to.rename(LABEL_BAND),
        transition.rename('transition'),
        elevation.rename('elevation'),
        ee.Image(year).multiply(lulc_from.neq(lulc_to)).rename('year'),
    ])


def assemble_forecast_image(lulc_previous, lulc_latest, transition, elevation, year):
    return ee.Image([
        lulc_latest.rename('start'),
        transition.rename('transition'),
        elevation.rename('elevation'),
        ee.Image(year).multiply(lulc_latest.neq(lulc_previous)).rename('year'),
    ])
