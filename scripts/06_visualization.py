"""
06_visualization.py
===================
Fase 6: Figuras del cambio LULC y la proyeccion 2033:

- Mapas LULC por anio con la leyenda de clases (color, valor, nombre)
- Mapa de transiciones solo con pixeles de cambio
- Grafico de areas agrupado: anio en el eje de categorias, hectareas en el
  eje de valores, una serie por clase LULC
"""

import os
import sys

import numpy as np
import matplotlib.patches as mpatches

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from scripts.figure_style import (
    CHANGE_MAP_CMAP, DOUBLE_COL_WIDTH, lulc_cmap, save_figure, setup_journal_style
)
from scripts.utils import get_change_vis_params


def legend_handles(catalog):
    return [mpatches.Patch(facecolor=color, edgecolor='0.4', linewidth=0.4,
                           label=f"{value}  {name}")
            for color, value, name in catalog.legend_items()]


def plot_lulc_map(ax, lulc, catalog, title='', nodata=0):
    cmap, norm = lulc_cmap(catalog)
    data = np.ma.masked_equal(np.asarray(lulc), nodata)
    ax.imshow(data, cmap=cmap, norm=norm, interpolation='nearest')
    ax.set_title(title)
    ax.set_xticks([])
    ax.set_yticks([])
    return ax


def plot_lulc_maps(maps, catalog, filepath):
    """maps: {anio: array 2-D}, de izquierda a derecha en orden cronologico."""
    plt = setup_journal_style()
    years = sorted(maps)
    fig, axes = plt.subplots(1, len(years), figsize=(DOUBLE_COL_WIDTH, DOUBLE_COL_WIDTH / len(years) + 1),
                             squeeze=False)
    for ax, year in zip(axes[0], years):
        plot_lulc_map(ax, maps[year], catalog, title=f'LULC {year}')
    fig.legend(handles=legend_handles(catalog), loc='lower center',
               ncol=min(len(catalog), 6), frameon=False)
    fig.subplots_adjust(bottom=0.2)
    return save_figure(fig, filepath)


def plot_change_map(changed_only, catalog, filepath, title='Land cover change map'):
    """Mapa de transiciones solo con cambios; los pixeles enmascarados quedan en blanco."""
    plt = setup_journal_style()
    vis = get_change_vis_params({e.code: {'color': e.color} for e in catalog})
    fig, ax = plt.subplots(figsize=(DOUBLE_COL_WIDTH / 2, DOUBLE_COL_WIDTH / 2))
    image = ax.imshow(changed_only, cmap=CHANGE_MAP_CMAP, vmin=vis['min'], vmax=vis['max'],
                      interpolation='nearest')
    fig.colorbar(image, ax=ax, shrink=0.7, label='from * 100 + to')
    ax.set_title(title)
    ax.set_xticks([])
    ax.set_yticks([])
    return save_figure(fig, filepath)


def plot_area_chart(area_frame, catalog, filepath,
                    title='LULC area changes 2014 - 2024 - 2033'):
    """
    Grafico de barras agrupadas desde la tabla de AreaRecord (columnas year,
    class, LULC, area). Las clases mantienen orden y color del catalogo.
    """
    plt = setup_journal_style()
    table = area_frame.pivot_table(index='year', columns='LULC', values='area',
                                   aggfunc='sum', fill_value=0.0)
    series = [n for n in catalog.names if n in table.columns]
    table = table[series]
    colors = [catalog.color(c) for c, n in zip(catalog.codes, catalog.names) if n in series]

    fig, ax = plt.subplots(figsize=(DOUBLE_COL_WIDTH, 3.2))
    table.plot(kind='bar', ax=ax, color=colors, width=0.8, edgecolor='0.3', linewidth=0.3)
    ax.set_title(title)
    ax.set_xlabel('year')
    ax.set_ylabel('area (ha)')
    ax.tick_params(axis='x', rotation=0)
    ax.legend(title='LULC', bbox_to_anchor=(1.01, 1.0), loc='upper left')
    return save_figure(fig, filepath)
