# treelearn/__init__.py
"""
treelearn: decision trees over mixed real and categorical features.

Exports:
    - DecisionTreeRegressor, DecisionTreeClassifier (scikit-learn style)
    - DecisionTreeLearner, DecisionTreeParameters, DecisionTreeModel
    - RegressionSplitter, ClassificationSplitter and the split variants
    - VarianceCalculator, GiniCalculator
    - LeafLearner and the leaf learners
    - FeatureRow, TrainingRow, build_training_data
"""
import logging

from .errors import FitError, ModelingError, TransformError
from .rows import FeatureRow, TrainingRow, build_training_data
from .impurity import GiniCalculator, ImpurityCalculator, VarianceCalculator
from .splits import (NO_SPLIT, CategoricalSplit, ClassificationSplitter, NoSplit, RealSplit,
                     RegressionSplitter, Split, Splitter)
from .leaf import (GuessTheMeanLearner, GuessTheMeanModel, LeafKind, LeafLearner,
                   LinearRegressionLearner, LinearRegressionModel, Model, Prediction)
from .nodes import ModelInternal, ModelLeaf, TrainingInternal, TrainingLeaf, build_model_node
from .learners import DecisionTreeLearner, DecisionTreeModel, DecisionTreeParameters
from .estimator import DecisionTreeClassifier, DecisionTreeRegressor

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "DecisionTreeRegressor", "DecisionTreeClassifier",
    "DecisionTreeLearner", "DecisionTreeParameters", "DecisionTreeModel",
    "Split", "NoSplit", "NO_SPLIT", "RealSplit", "CategoricalSplit",
    "Splitter", "RegressionSplitter", "ClassificationSplitter",
    "ImpurityCalculator", "VarianceCalculator", "GiniCalculator",
    "LeafKind", "LeafLearner", "GuessTheMeanLearner", "GuessTheMeanModel",
    "LinearRegressionLearner", "LinearRegressionModel", "Model", "Prediction",
    "TrainingLeaf", "TrainingInternal", "ModelLeaf", "ModelInternal", "build_model_node",
    "FeatureRow", "TrainingRow", "build_training_data",
    "ModelingError", "FitError", "TransformError",
]
__version__ = "0.1.0"
