"""
Modulo de estilo compartido para los mapas y graficos LULC.
Incluye: rcParams, constantes de tamano, colormaps LULC, guardado de figuras.
"""

import os

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import matplotlib.colors as mcolors


# ============================================================
# SIZE CONSTANTS
# ============================================================

SINGLE_COL_WIDTH = 3.54  # 90 mm
DOUBLE_COL_WIDTH = 7.48  # 190 mm

DPI_SAVE = 300
DPI_DISPLAY = 150

# ============================================================
# PALETTES
# ============================================================

NODATA_COLOR = '#ffffff'

CHANGE_MAP_CMAP = 'magma_r'


def lulc_cmap(catalog):
    """ListedColormap + BoundaryNorm: el codigo k usa el color k."""
    cmap = mcolors.ListedColormap(catalog.colors)
    cmap.set_bad(NODATA_COLOR)
    bounds = [c - 0.5 for c in catalog.codes] + [catalog.codes[-1] + 0.5]
    norm = mcolors.BoundaryNorm(bounds, cmap.N)
    return cmap, norm


def setup_journal_style():
    """Configura rcParams de matplotlib para las figuras."""
    plt.rcParams.update({
        'font.family': 'serif',
        'font.serif': ['Times New Roman', 'Times', 'DejaVu Serif'],
        'font.size': 8,
        'axes.labelsize': 9,
        'axes.titlesize': 10,
        'xtick.labelsize': 8,
        'ytick.labelsize': 8,
        'legend.fontsize': 7,
        'legend.title_fontsize': 8,

        # Spine and axis styling
        'axes.spines.top': False,
        'axes.spines.right': False,
        'axes.linewidth': 0.6,
        'axes.grid': False,

        # Legend
        'legend.frameon': True,
        'legend.framealpha': 0.9,
        'legend.edgecolor': '0.8',

        # Save settings
        'figure.dpi': DPI_DISPLAY,
        'savefig.dpi': DPI_SAVE,
        'savefig.bbox': 'tight',
        'savefig.pad_inches': 0.05,
    })
    return plt


def save_figure(fig, filepath, also_png=True, also_pdf=False):
    """Guarda la figura en PNG (raster) y/o PDF (vectorial)."""
    base, _ = os.path.splitext(filepath)
    os.makedirs(os.path.dirname(base) or '.', exist_ok=True)
    saved = []

    if also_pdf:
        fig.savefig(base + '.pdf')
        saved.append(base + '.pdf')
        print(f"  [OK] {base}.pdf")

    if also_png:
        fig.savefig(base + '.png', dpi=DPI_SAVE)
        saved.append(base + '.png')
        print(f"  [OK] {base}.png")

    plt.close(fig)
    return saved
