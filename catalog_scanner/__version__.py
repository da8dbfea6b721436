"""
版本信息
"""

__version__ = "1.2.0"
__version_info__ = tuple(int(part) for part in __version__.split("."))

PROJECT_NAME = "catalog-scanner"
PROJECT_DESCRIPTION = "图书/漫画目录扫码助手"
AUTHOR = "Catalog Scanner Team"

# stable, beta, rc
RELEASE_STAGE = "stable"


def get_version_string() -> str:
    if RELEASE_STAGE == "stable":
        return __version__
    return f"{__version__}-{RELEASE_STAGE}"


def get_version_info() -> dict:
    """CLI 与状态输出使用的版本信息"""
    return {
        "name": PROJECT_NAME,
        "description": PROJECT_DESCRIPTION,
        "version": __version__,
        "stage": RELEASE_STAGE,
        "string": get_version_string(),
    }


__all__ = [
    "__version__",
    "__version_info__",
    "PROJECT_NAME",
    "PROJECT_DESCRIPTION",
    "AUTHOR",
    "get_version_string",
    "get_version_info",
]
