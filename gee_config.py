import os

import ee
from dotenv import load_dotenv

load_dotenv()


def init_ee(project=None):
    """Inicializa Earth Engine con el proyecto de .env (GEE_PROJECT_ID)."""
    project = project or os.getenv('GEE_PROJECT_ID')
    try:
        ee.Initialize(project=project)
        print(f"GEE inicializado: {project}")
    except Exception as e:
        print(f"Error GEE: {e}")
        raise
    return project


# ============================================================
# PERIODOS DE ANALISIS
# ============================================================

PERIODS = {
    'start': {
        'label': 'LULC 2014',
        'map_year': 2014,
        'asset': os.getenv('LULC_ASSET_2014', 'projects/ee-kumarmauryaankush65/assets/2014'),
    },
    'end': {
        'label': 'LULC 2024',
        'map_year': 2024,
        'asset': os.getenv('LULC_ASSET_2024', 'projects/ee-kumarmauryaankush65/assets/2024'),
    },
    'forecast': {
        'label': 'LULC 2033 Prediction',
        'map_year': 2033,
        'asset': None,
    },
}

# ============================================================
# COLECCIONES GEE
# ============================================================

COLLECTIONS = {
    'srtm': 'USGS/SRTMGL1_003',
}

# ============================================================
# CLASES LULC (6 clases)
# ============================================================

LULC_CLASSES = {
    1: {'name': 'Waterbody', 'color': '#013220'},
    2: {'name': 'Dense forest', 'color': '#FFC0CB'},
    3: {'name': 'Agriculture land', 'color': '#FFFF00'},
    4: {'name': 'Range land', 'color': '#0000FF'},
    5: {'name': 'Builtup', 'color': '#FF0000'},
    6: {'name': 'Barren land', 'color': '#008000'},
}

# ============================================================
# PARAMETROS DE MUESTREO, RANDOM FOREST Y AREAS
# ============================================================

ANALYSIS_PARAMS = {
    'n_points': 3000,          # puntos por estrato de transicion
    'train_threshold': 0.8,    # random <= 0.8 -> train, > 0.8 -> test
    'n_trees': 50,
    'scale': 10,               # resolucion nominal (m)
    'pixel_area_divisor': 10000,  # m2 -> ha
    'seed': 0,
    'best_effort': True,
}

# Bandas del stack de variables
FEATURE_BANDS = ['start', 'transition', 'elevation', 'year']
LABEL_BAND = 'end'
