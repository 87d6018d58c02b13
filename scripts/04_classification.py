"""
04_classification.py
====================
Fase 4: Random Forest para el LULC final del intervalo y evaluacion de exactitud.

Dos clasificadores intercambiables con los mismos metodos
(train / apply / classify / confusion_matrix / feature_importance):

- EarthEngineRandomForest: ee.Classifier.smileRandomForest, entrenado con
  un ee.FeatureCollection y aplicado en el servidor.
- LocalRandomForest: RandomForestClassifier de scikit-learn, entrenado con
  listas de FeatureRecord y aplicado sobre stacks numpy.

Las metricas (OA, Kappa, exactitud de productor y de usuario) se calculan
siempre localmente a partir de la matriz de confusion.
"""

import os
import sys
from dataclasses import dataclass

import ee
import numpy as np
from sklearn.ensemble import RandomForestClassifier

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from gee_config import ANALYSIS_PARAMS
from scripts.utils import DataError, getinfo

PREDICTION_PROPERTY = 'prediction'
OUTPUT_BAND = 'LULC'


# ============================================================
# MATRIZ DE CONFUSION
# ============================================================

class ConfusionMatrix:
    """Conteos K x K; filas = clase real, columnas = clase predicha."""

    def __init__(self, matrix, order):
        self.matrix = np.asarray(matrix, dtype=float)
        self.order = [int(c) for c in order]
        k = len(self.order)
        if self.matrix.shape != (k, k):
            raise DataError(f"Confusion matrix shape {self.matrix.shape} does not match {k} classes")

    @classmethod
    def from_labels(cls, actual, predicted, order):
        index = {int(c): i for i, c in enumerate(order)}
        matrix = np.zeros((len(index), len(index)))
        for a, p in zip(actual, predicted):
            if int(a) not in index or int(p) not in index:
                raise DataError(f"Label pair ({a}, {p}) outside class order {list(order)}")
            matrix[index[int(a)], index[int(p)]] += 1
        return cls(matrix, order)

    @classmethod
    def from_ee(cls, error_matrix, order):
        return cls(getinfo(error_matrix.array(), 'confusion_matrix'), order)

    @property
    def total(self):
        return float(self.matrix.sum())

    def accuracy(self):
        if self.total == 0:
            raise DataError("Confusion matrix is empty")
        return float(np.trace(self.matrix)) / self.total

    def kappa(self):
        """Kappa de Cohen; NaN cuando el acuerdo por azar es 1."""
        po = self.accuracy()
        pe = float((self.matrix.sum(axis=1) * self.matrix.sum(axis=0)).sum()) / self.total ** 2
        if pe == 1.0:
            return float('nan')
        return (po - pe) / (1.0 - pe)

    def producers_accuracy(self):
        actual = self.matrix.sum(axis=1)
        diag = np.diag(self.matrix)
        return [float(d / a) if a else 0.0 for d, a in zip(diag, actual)]

    def consumers_accuracy(self):
        predicted = self.matrix.sum(axis=0)
        diag = np.diag(self.matrix)
        return [float(d / p) if p else 0.0 for d, p in zip(diag, predicted)]

    def to_dict(self):
        kappa = self.kappa()
        return {
            'class_order': self.order,
            'confusion_matrix': self.matrix.astype(int).tolist(),
            'overall_accuracy': round(self.accuracy(), 4),
            # NaN no es JSON valido
            'kappa': None if np.isnan(kappa) else round(kappa, 4),
            'producers_accuracy': [round(v, 4) for v in self.producers_accuracy()],
            'users_accuracy': [round(v, 4) for v in self.consumers_accuracy()],
        }


# ============================================================
# CLASIFICADORES
# ============================================================

@dataclass(frozen=True)
class TrainedModel:
    estimator: object
    target: str
    predictors: tuple


class LocalRandomForest:

    def __init__(self, n_trees=None, seed=0):
        self.n_trees = n_trees or ANALYSIS_PARAMS['n_trees']
        self.seed = seed

    @staticmethod
    def _matrix(records, predictors):
        return np.array([r.values(predictors) for r in records], dtype=float)

    def train(self, records, target, predictors):
        labels = [getattr(r, target) for r in records]
        if not records or any(v is None for v in labels):
            raise DataError(f"Training records need a '{target}' value")
        forest = RandomForestClassifier(n_estimators=self.n_trees, random_state=self.seed)
        forest.fit(self._matrix(records, predictors), np.asarray(labels, dtype=int))
        return TrainedModel(forest, target, tuple(predictors))

    def apply(self, model, records):
        return model.estimator.predict(self._matrix(records, model.predictors)).astype(int).tolist()

    def classify(self, model, features, chunk_size=250000, nodata=0):
        """Predice cada pixel valido de un FeatureImage; nodata en el resto."""
        stack = features.stack(list(model.predictors))
        pixels = stack.reshape(-1, stack.shape[-1])
        valid = np.isfinite(pixels).all(axis=1) & (np.asarray(features['transition']).ravel() != nodata)

        out = np.full(pixels.shape[0], nodata, dtype=np.int32)
        idx = np.flatnonzero(valid)
        for lo in range(0, idx.size, chunk_size):
            chunk = idx[lo:lo + chunk_size]
            out[chunk] = model.estimator.predict(pixels[chunk])
        return out.reshape(features.shape)

    def confusion_matrix(self, model, records, order):
        actual = [getattr(r, model.target) for r in records]
        return ConfusionMatrix.from_labels(actual, self.apply(model, records), order)

    def feature_importance(self, model):
        return {p: float(v) for p, v in zip(model.predictors, model.estimator.feature_importances_)}


class EarthEngineRandomForest:

    def __init__(self, n_trees=None, seed=0):
        self.n_trees = n_trees or ANALYSIS_PARAMS['n_trees']
        self.seed = seed

    def train(self, records, target, predictors):
        classifier = ee.Classifier.smileRandomForest(
            numberOfTrees=self.n_trees, seed=self.seed
        ).train(
            features=records,
            classProperty=target,
            inputProperties=list(predictors),
        )
        return TrainedModel(classifier, target, tuple(predictors))

    def apply(self, model, records):
        return records.classify(model.estimator, PREDICTION_PROPERTY)

    def classify(self, model, features):
        return features.select(list(model.predictors)).classify(model.estimator, OUTPUT_BAND)

    def confusion_matrix(self, model, records, order):
        error_matrix = self.apply(model, records).errorMatrix(
            model.target, PREDICTION_PROPERTY, list(order))
        return ConfusionMatrix.from_ee(error_matrix, order)

    def feature_importance(self, model):
        importance = ee.Dictionary(model.estimator.explain().get('importance'))
        return getinfo(importance, 'feature_importance')
