"""Source analysis: parsing, classification and target inference"""

from mtr.analysis.classifier import Classification, CompatibilityClassifier
from mtr.analysis.parser import InterfaceParser, ParseResult
from mtr.analysis.target_inference import UNKNOWN_TARGET, Inference, TargetInferencer

__all__ = [
    "Classification",
    "CompatibilityClassifier",
    "InterfaceParser",
    "ParseResult",
    "UNKNOWN_TARGET",
    "Inference",
    "TargetInferencer",
]
