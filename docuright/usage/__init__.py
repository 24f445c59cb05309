"""Anonymous usage metering and the registration funnel."""

from docuright.usage.meter import MAX_FREE_GENERATIONS, UsageMeter, prompt_for
from docuright.usage.models import Generation, PromptType, UsageRecord, UsageView

__all__ = [
    "Generation",
    "MAX_FREE_GENERATIONS",
    "PromptType",
    "UsageMeter",
    "UsageRecord",
    "UsageView",
    "prompt_for",
]
