"""bottleforge: idempotent provisioning of a Wine wrapper on Apple Silicon.

Installs the base runtime, assembles a self-contained wrapper app from a
template and an engine release, converges its Info.plist, installs the
.NET runtimes and the guest launcher, and configures audio.  Every stage
inspects the host first, so a second run does nothing.
"""

__version__ = "0.2.0"
__description__ = "Idempotent Wine wrapper provisioning for macOS on Apple Silicon"

from bottleforge.core.orchestrator import StageOrchestrator
from bottleforge.monitor.renderer import RunRenderer
from bottleforge.cli.app import app as cli

__all__ = ["StageOrchestrator", "RunRenderer", "cli", "__version__"]
