"""
05_area_statistics.py
=====================
Fase 5: Area por clase LULC y por transicion.

Area por clase: area de pixel (m2) / 10,000 -> ha, agrupada por codigo de
clase, sumada y re-etiquetada con los nombres del catalogo. En Earth Engine
la reduccion agrupada corre con bestEffort=True, asi que en regiones grandes
los totales pueden perder algo de precision en los bordes.

Incluye tambien la matriz de areas de transicion y las tasas de cambio
anuales FAO (Puyravaud 2003): r = (1/t) * ln(A2/A1).
"""

import os
import sys
import math
from dataclasses import dataclass

import ee
import numpy as np
import pandas as pd

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from gee_config import ANALYSIS_PARAMS
from scripts.utils import DataError, check_same_shape, getinfo

EARTH_RADIUS_M = 6371008.8


@dataclass(frozen=True)
class AreaRecord:
    year: int
    class_code: int
    class_name: str
    area_ha: float

    def as_row(self):
        return {'year': self.year, 'class': self.class_code,
                'LULC': self.class_name, 'area': self.area_ha}


# ============================================================
# AREA DE PIXEL
# ============================================================

def pixel_area_grid(transform, shape, geographic=False):
    """
    Area por pixel en m2 para una transformada afin orientada al norte.

    En grillas proyectadas el area es constante; en grillas geograficas
    (grados) se usa el area esferica entre las latitudes de borde de cada fila.
    """
    rows, cols = shape
    if not geographic:
        return np.full(shape, abs(transform.a * transform.e), dtype=float)

    edges = np.radians(transform.f + transform.e * np.arange(rows + 1))
    dlon = math.radians(abs(transform.a))
    row_area = EARTH_RADIUS_M ** 2 * dlon * np.abs(np.diff(np.sin(edges)))
    return np.repeat(row_area[:, None], cols, axis=1)


# ============================================================
# AREA POR CLASE
# ============================================================

def aggregate_area(lulc, pixel_area_m2, year, catalog, divisor=None, nodata=0):
    """AreaRecord por clase con area no nula, en orden del catalogo."""
    divisor = divisor or ANALYSIS_PARAMS['pixel_area_divisor']
    lulc = np.asarray(lulc)
    pixel_area_m2 = np.asarray(pixel_area_m2, dtype=float)
    check_same_shape(lulc=lulc, pixel_area=pixel_area_m2)
    catalog.check_codes(lulc, nodata=nodata)

    codes = lulc.ravel().astype(np.int64)
    valid = codes != nodata
    sums = np.bincount(codes[valid], weights=pixel_area_m2.ravel()[valid] / divisor,
                       minlength=max(catalog.codes) + 1)
    return [AreaRecord(int(year), code, catalog.name(code), float(sums[code]))
            for code in catalog.codes if sums[code] > 0]


def area_records_from_groups(groups, year, catalog):
    """
    Convierte la salida del reductor agrupado ([{'class': c, 'area': ha}, ...])
    en AreaRecord, descartando grupos con area cero.
    """
    records = []
    for group in groups or []:
        if group.get('class') is None or group.get('area') is None:
            raise DataError(f"Malformed area group: {group}")
        code = int(group['class'])
        area = float(group['area'])
        if area > 0:
            records.append(AreaRecord(int(year), code, catalog.name(code), area))
    return sorted(records, key=lambda r: r.class_code)


def area_groups_image(lulc_image, region, scale=None, best_effort=None, divisor=None):
    """ee.List de diccionarios {'class', 'area'} (lado servidor)."""
    scale = scale or ANALYSIS_PARAMS['scale']
    best_effort = ANALYSIS_PARAMS['best_effort'] if best_effort is None else best_effort
    divisor = divisor or ANALYSIS_PARAMS['pixel_area_divisor']

    image_area = ee.Image.pixelArea().divide(divisor)
    reduced = image_area.addBands(lulc_image).reduceRegion(
        reducer=ee.Reducer.sum().setOutputs(['area']).group(1, 'class'),
        geometry=region,
        scale=scale,
        maxPixels=1e13,
        bestEffort=best_effort,
    )
    return reduced.get('groups')


def area_records_image(lulc_image, year, region, catalog, **kwargs):
    groups = getinfo(area_groups_image(lulc_image, region, **kwargs), f"area_{year}")
    return area_records_from_groups(groups, year, catalog)


def records_to_frame(records):
    return pd.DataFrame([r.as_row() for r in records], columns=['year', 'class', 'LULC', 'area'])


def class_areas(records, year):
    """{codigo_clase: area_ha} para un anio."""
    return {r.class_code: r.area_ha for r in records if r.year == year}


# ============================================================
# MATRIZ DE TRANSICION EN HECTAREAS
# ============================================================

def _transition_entry(encoder, code, area):
    value_from, value_to = encoder.decode(code)
    return f"{value_from}->{value_to}", {
        'code': int(code),
        'from': encoder.catalog.name(value_from),
        'to': encoder.catalog.name(value_to),
        'area_ha': round(float(area), 1),
    }


def transition_areas(transition, pixel_area_m2, encoder, divisor=None, nodata=0):
    """Hectareas por transicion observada en un mapa numpy de transiciones."""
    divisor = divisor or ANALYSIS_PARAMS['pixel_area_divisor']
    transition = np.asarray(transition)
    check_same_shape(transition=transition, pixel_area=np.asarray(pixel_area_m2))

    codes = transition.ravel().astype(np.int64)
    valid = codes != nodata
    sums = np.bincount(codes[valid], weights=np.asarray(pixel_area_m2, dtype=float).ravel()[valid] / divisor)
    return dict(_transition_entry(encoder, code, sums[code])
                for code in np.flatnonzero(sums))


def transition_areas_image(transition_image, region, encoder, scale=None, best_effort=None,
                           divisor=None):
    scale = scale or ANALYSIS_PARAMS['scale']
    best_effort = ANALYSIS_PARAMS['best_effort'] if best_effort is None else best_effort
    divisor = divisor or ANALYSIS_PARAMS['pixel_area_divisor']

    stats = ee.Image.pixelArea().divide(divisor).addBands(transition_image).reduceRegion(
        reducer=ee.Reducer.sum().group(groupField=1, groupName='transition'),
        geometry=region,
        scale=scale,
        maxPixels=1e13,
        bestEffort=best_effort,
    )
    groups = getinfo(stats, 'transition_areas').get('groups', [])
    return dict(_transition_entry(encoder, g['transition'], g['sum'])
                for g in groups if g['sum'] > 0)


def top_changes(matrix, n=6):
    """Transiciones de cambio (no persistencia) con mayor area."""
    changes = [(k, v) for k, v in matrix.items() if v['from'] != v['to']]
    changes.sort(key=lambda kv: kv[1]['area_ha'], reverse=True)
    return changes[:n]


# ============================================================
# TASAS DE CAMBIO
# ============================================================

def compute_change_rates(area_t1, area_t2, years_between, catalog):
    """
    Tasas de cambio anuales usando formula FAO (Puyravaud 2003).
    r = (1/t) * ln(A2/A1)
    """
    rates = {}
    for class_id in catalog.codes:
        a1 = area_t1.get(class_id, 0)
        a2 = area_t2.get(class_id, 0)
        if a1 > 0 and a2 > 0:
            r = (1.0 / years_between) * math.log(a2 / a1) * 100
            pct_change = ((a2 - a1) / a1) * 100
        else:
            r = 0
            pct_change = 0

        rates[class_id] = {
            'name': catalog.name(class_id),
            'area_t1_ha': round(a1, 1),
            'area_t2_ha': round(a2, 1),
            'net_change_ha': round(a2 - a1, 1),
            'pct_change': round(pct_change, 2),
            'annual_rate_pct': round(r, 3),
        }
    return rates
