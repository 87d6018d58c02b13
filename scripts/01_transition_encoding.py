"""
01_transition_encoding.py
=========================
Fase 1: Codificacion de transiciones entre dos mapas LULC.

Cada pixel del mapa de transiciones vale ``clase_origen * 100 + clase_destino``
(ej. Waterbody -> Dense forest = 102). Los pixeles sin cambio conservan su
codigo (101, 202, ...) en el mapa completo, que se usa como variable del
modelo; la version changed-only los enmascara y solo se usa para visualizar.

La codificacion es inequivoca solo con menos de 100 clases, por eso el
codificador rechaza catalogos mas grandes.
"""

import os
import sys
import itertools
from dataclasses import dataclass
from functools import reduce

import ee
import numpy as np

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from gee_config import LULC_CLASSES
from scripts.utils import ConfigurationError, check_same_shape

ENCODING_BASE = 100
NODATA = 0
LABEL_SEPARATOR = ' -> '


# ============================================================
# CATALOGO DE CLASES
# ============================================================

@dataclass(frozen=True)
class ClassEntry:
    code: int
    name: str
    color: str


class ClassCatalog:
    """Clases LULC ordenadas; los codigos deben ser exactamente 1..K."""

    def __init__(self, entries):
        entries = list(entries)
        if not entries:
            raise ConfigurationError("Class catalog is empty")
        codes = [e.code for e in entries]
        if codes != list(range(1, len(entries) + 1)):
            raise ConfigurationError(
                f"Class codes must be 1..{len(entries)} in order, got {codes}")
        names = [e.name for e in entries]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate class names in catalog: {names}")
        self._entries = tuple(entries)
        self._by_code = {e.code: e for e in entries}

    @classmethod
    def from_config(cls, classes=None):
        classes = LULC_CLASSES if classes is None else classes
        return cls(ClassEntry(int(code), info['name'], info['color'])
                   for code, info in sorted(classes.items()))

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def __contains__(self, code):
        return code in self._by_code

    @property
    def codes(self):
        return [e.code for e in self._entries]

    @property
    def names(self):
        return [e.name for e in self._entries]

    @property
    def colors(self):
        return [e.color for e in self._entries]

    def name(self, code):
        try:
            return self._by_code[int(code)].name
        except KeyError:
            raise ConfigurationError(f"Class code {code} not in catalog") from None

    def color(self, code):
        return self._by_code[int(code)].color

    def legend_items(self):
        """Tripletas (color, valor, nombre) en orden de leyenda."""
        return [(e.color, e.code, e.name) for e in self._entries]

    def check_codes(self, raster, nodata=NODATA):
        """Todo valor distinto de nodata en ``raster`` debe ser un codigo del catalogo."""
        values = set(np.unique(np.asarray(raster)).tolist()) - {nodata}
        unknown = sorted(v for v in values if v not in self._by_code)
        if unknown:
            raise ConfigurationError(f"Raster holds codes not in catalog: {unknown}")


# ============================================================
# CODIFICACION DE TRANSICIONES
# ============================================================

@dataclass(frozen=True)
class TransitionMap:
    full: np.ndarray
    changed_only: np.ma.MaskedArray
    catalog: dict


class TransitionEncoder:

    def __init__(self, catalog):
        if len(catalog) >= ENCODING_BASE:
            raise ConfigurationError(
                f"{len(catalog)} classes: the *{ENCODING_BASE} transition "
                f"encoding needs fewer than {ENCODING_BASE}")
        self.catalog = catalog

    def encode(self, value_from, value_to):
        for v in (value_from, value_to):
            if v not in self.catalog:
                raise ConfigurationError(f"Class code {v} not in catalog")
        return int(value_from) * ENCODING_BASE + int(value_to)

    def decode(self, code):
        value_from, value_to = divmod(int(code), ENCODING_BASE)
        if value_from not in self.catalog or value_to not in self.catalog:
            raise ConfigurationError(f"{code} is not a valid transition code")
        return value_from, value_to

    def pairs(self):
        """Todos los pares (origen, destino) en orden del catalogo."""
        return itertools.product(self.catalog.codes, self.catalog.codes)

    def label(self, code):
        value_from, value_to = self.decode(code)
        return self.catalog.name(value_from) + LABEL_SEPARATOR + self.catalog.name(value_to)

    def transition_catalog(self):
        """Valor codificado -> "<Origen> -> <Destino>", K^2 entradas."""
        return {self.encode(v1, v2): self.catalog.name(v1) + LABEL_SEPARATOR + self.catalog.name(v2)
                for v1, v2 in self.pairs()}

    def transition_dictionary(self):
        """Igual que transition_catalog() con claves string (para JSON)."""
        return {str(k): v for k, v in self.transition_catalog().items()}

    def compute(self, lulc_from, lulc_to):
        """
        Mapa de transiciones a partir de dos arrays LULC numpy.

        Retorna un TransitionMap: ``full`` conserva los codigos sin cambio y
        vale 0 donde alguna entrada es nodata; ``changed_only`` es un masked
        array que oculta nodata y pixeles sin cambio.
        """
        lulc_from = np.asarray(lulc_from)
        lulc_to = np.asarray(lulc_to)
        check_same_shape(lulc_from=lulc_from, lulc_to=lulc_to)
        self.catalog.check_codes(lulc_from)
        self.catalog.check_codes(lulc_to)

        def apply_pair(acc, pair):
            v1, v2 = pair
            hit = (lulc_from == v1) & (lulc_to == v2)
            return np.where(hit, self.encode(v1, v2), acc)

        full = reduce(apply_pair, self.pairs(),
                      np.full(lulc_from.shape, NODATA, dtype=np.int32))
        full.setflags(write=False)

        changed_only = np.ma.masked_array(
            full, mask=(full == NODATA) | (lulc_from == lulc_to))
        return TransitionMap(full=full, changed_only=changed_only,
                             catalog=self.transition_catalog())

    def compute_image(self, lulc_from, lulc_to):
        """
        Version Earth Engine de compute().

        Retorna (full, changed_only) como ee.Image, ambas con banda 'transition'.
        """
        def apply_pair(acc, pair):
            v1, v2 = pair
            return acc.where(lulc_from.eq(v1).And(lulc_to.eq(v2)), self.encode(v1, v2))

        full = reduce(apply_pair, self.pairs(), ee.Image(NODATA).toInt16())
        full = full.selfMask().rename('transition')
        changed_only = full.updateMask(lulc_from.neq(lulc_to))
        return full, changed_only
