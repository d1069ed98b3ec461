# plugpm/container/__init__.py
from .codec import (
    ContainerMetadata,
    Container,
    ContainerCodec,
    TarContainer,
    TarContainerCodec,
    buildContainer,
)

__all__ = [
    "ContainerMetadata",
    "Container",
    "ContainerCodec",
    "TarContainer",
    "TarContainerCodec",
    "buildContainer",
]
