"""
Funciones auxiliares para el proyecto LULC 2033.
Incluye: logging, errores, getInfo, exportacion, parametros de visualizacion.
"""

import ee
import os
import sys
import json
from datetime import datetime

# Agregar directorio raiz al path
PROJECT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_DIR)
from gee_config import LULC_CLASSES

OUTPUT_DIR = os.path.join(PROJECT_DIR, 'outputs')
LOG_PATH = os.path.join(PROJECT_DIR, 'logs', 'lulc_prediction.log')


# ============================================================
# ERRORES
# ============================================================

class ConfigurationError(ValueError):
    """Catalogo invalido o rasters no co-registrados."""


class DataError(RuntimeError):
    """Registros del backend que no se pueden usar aguas abajo."""


class EmptyPartitionError(DataError):
    """Particion train o test sin registros."""


# ============================================================
# LOGGING Y SALIDAS
# ============================================================

def log(msg, log_path=None):
    ts = datetime.now().strftime('%H:%M:%S')
    line = f"[{ts}] {msg}"
    print(line, flush=True)
    log_path = log_path or LOG_PATH
    os.makedirs(os.path.dirname(log_path), exist_ok=True)
    with open(log_path, 'a') as f:
        f.write(line + '\n')


def save_json(data, filename, output_dir=None):
    output_dir = output_dir or OUTPUT_DIR
    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, filename)
    with open(path, 'w') as f:
        json.dump(data, f, indent=2, default=str)
    log(f"  >> Guardado: {filename}")
    return path


def getinfo(ee_obj, label=""):
    """getInfo() que registra la etiqueta del fallo y relanza la excepcion."""
    try:
        return ee_obj.getInfo()
    except Exception as e:
        log(f"  ERROR ({label}): {e}")
        raise


def banner(title, char='='):
    log(char * 60)
    log(title)
    log(char * 60)


def check_same_shape(**rasters):
    """Valida que los arrays esten co-registrados (misma forma)."""
    shapes = {name: arr.shape for name, arr in rasters.items() if arr is not None}
    if len(set(shapes.values())) > 1:
        detail = ", ".join(f"{k}={v}" for k, v in shapes.items())
        raise ConfigurationError(f"Rasters with different shapes: {detail}")
    return next(iter(shapes.values()), None)


# ============================================================
# AREA DE ESTUDIO
# ============================================================

def get_study_area(lulc_image):
    """Region de interes: huella del mapa LULC de referencia."""
    return lulc_image.geometry()


# ============================================================
# EXPORTACION
# ============================================================

def export_image_to_drive(image, description, folder, region, scale=10):
    """Exporta imagen GEE a Google Drive."""
    task = ee.batch.Export.image.toDrive(
        image=image,
        description=description,
        folder=folder,
        region=region,
        scale=scale,
        maxPixels=1e13,
    )
    task.start()
    log(f"Exportando: {description}")
    return task


# ============================================================
# VISUALIZACION
# ============================================================

def get_lulc_vis_params(classes=None):
    """Parametros de visualizacion para mapas LULC."""
    classes = classes or LULC_CLASSES
    codes = sorted(classes)
    return {
        'min': codes[0],
        'max': codes[-1],
        'palette': [classes[c]['color'].lstrip('#') for c in codes],
    }


def get_lulc_vis_properties(classes=None):
    """
    Diccionario de propiedades de visualizacion que se adjunta a cada imagen
    LULC (palette/values/names en orden de codigo).
    """
    classes = classes or LULC_CLASSES
    codes = sorted(classes)
    return {
        'LULC_class_palette': [classes[c]['color'].lstrip('#') for c in codes],
        'LULC_class_values': codes,
        'LULC_class_names': [classes[c]['name'] for c in codes],
    }


def get_change_vis_params(classes=None):
    """Rango de visualizacion del mapa de cambio (101 .. K*100+K)."""
    classes = classes or LULC_CLASSES
    codes = sorted(classes)
    return {
        'min': codes[0] * 100 + codes[0],
        'max': codes[-1] * 100 + codes[-1],
        'palette': [classes[c]['color'].lstrip('#') for c in codes],
    }
