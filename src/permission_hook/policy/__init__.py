"""Command policy subsystem: tiered allow / deny / defer decisions.

``LLMClassifier`` lives in :mod:`permission_hook.policy.classifier` and is
imported only where a classifier is configured.
"""

from permission_hook.policy.engine import Classifier, PolicyEngine, describe_input
from permission_hook.policy.models import (
    Allow,
    Defer,
    Deny,
    InlineScript,
    InterpreterKind,
    PolicyConfiguration,
    Verdict,
)

__all__ = [
    "Allow",
    "Classifier",
    "Defer",
    "Deny",
    "InlineScript",
    "InterpreterKind",
    "PolicyConfiguration",
    "PolicyEngine",
    "Verdict",
    "describe_input",
]
