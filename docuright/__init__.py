"""DocuRight client core: session lifecycle, anonymous usage gating, live preview."""

from docuright.client import DocuRightClient
from docuright.config import Settings

__all__ = ["DocuRightClient", "Settings"]
