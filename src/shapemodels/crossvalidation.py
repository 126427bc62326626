"""
Cross-validation of shape model building.

Builds one model per fold from the fold's training data, optionally adds a
Gaussian process bias, and scores it on the fold's testing data.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

import numpy as np
import pandas as pd

from shapemodels.errors import InsufficientDataError
from shapemodels.metrics import generalization
from shapemodels.model import augment_model
from shapemodels.pca import pca

if TYPE_CHECKING:
    from shapemodels.data import DataCollection, Fold
    from shapemodels.gp import LowRankGP
    from shapemodels.model import LowRankModel

log = logging.getLogger(__name__)

COLUMNS = ["fold", "n_training", "n_testing", "rank", "score"]


def cross_validation(
    collection: DataCollection,
    n_folds: int | None = None,
    builder: Callable[[DataCollection], LowRankModel] = pca,
    evaluator: Callable[[LowRankModel, DataCollection], float] = generalization,
    bias: LowRankModel | LowRankGP | None = None,
    rng: np.random.Generator | int | None = None,
) -> pd.DataFrame:
    """Evaluate model building on cross-validation folds.

    Args:
        collection: Data collection to split
        n_folds: Number of folds. If None, performs leave-one-out.
        builder: Builds a model from a fold's training data
        evaluator: Scores a model on a fold's testing data
        bias: Optional zero-mean bias added to every fold's model
        rng: If given, items are shuffled before being split into folds. For
            leave-one-out this only changes the order of the folds.

    Returns:
        DataFrame with one row per fold and columns
        ``fold, n_training, n_testing, rank, score``. Folds whose model could
        not be built have ``rank`` and ``score`` set to NaN.
    """
    if n_folds is None:
        n_folds = collection.size
    folds = collection.create_cross_validation_folds(n_folds, rng=rng)

    rows = [_evaluate_fold(i, fold, builder, evaluator, bias) for i, fold in enumerate(folds)]
    return pd.DataFrame(rows, columns=COLUMNS)


def _evaluate_fold(
    index: int,
    fold: Fold,
    builder: Callable[[DataCollection], LowRankModel],
    evaluator: Callable[[LowRankModel, DataCollection], float],
    bias: LowRankModel | LowRankGP | None,
) -> dict:
    row = {
        "fold": index,
        "n_training": fold.training_data.size,
        "n_testing": fold.testing_data.size,
        "rank": np.nan,
        "score": np.nan,
    }
    try:
        model = builder(fold.training_data)
    except InsufficientDataError as e:
        log.warning("Skipping fold %d: %s", index, e)
        return row

    if bias is not None:
        model = augment_model(model, bias)

    row["rank"] = model.rank
    row["score"] = evaluator(model, fold.testing_data)
    log.debug("Fold %d: rank %d, score %g", index, model.rank, row["score"])
    return row
