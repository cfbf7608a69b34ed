from taskgate.scaffold.driver_scaffolder import (
    ArtifactKind,
    DriverScaffolder,
    GeneratedArtifact,
    NetworkKind,
    ScaffoldOptions,
)
from taskgate.scaffold.spec_parser import Specification, SpecDialect, parse_specification

__all__ = [
    "ArtifactKind",
    "DriverScaffolder",
    "GeneratedArtifact",
    "NetworkKind",
    "ScaffoldOptions",
    "SpecDialect",
    "Specification",
    "parse_specification",
]
