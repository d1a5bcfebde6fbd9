"""convoy - dependency-aware asset pipeline for JavaScript and CSS."""

__version__ = "0.1.0"

from convoy.config import PackagerConfig, packager_config  # noqa: E402
from convoy.packager import AssetPackager  # noqa: E402
from convoy.pipeline import Pipeline  # noqa: E402

__all__ = ["AssetPackager", "PackagerConfig", "Pipeline", "__version__", "packager_config"]
