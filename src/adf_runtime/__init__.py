"""ADF Runtime.

Drives declaratively-defined conversational workflows to completion:
- a step-driving workflow executor over typed states
- elicitation with native delivery and a discoverable fallback surface
- sampling (language-model completions, including streaming)
"""

__version__ = "0.1.0"

from adf_runtime.config import RuntimeSettings

__all__ = ["__version__", "RuntimeSettings"]
