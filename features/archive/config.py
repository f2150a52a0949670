from dataclasses import dataclass, field

from shared.constants import BINARY_EXTENSIONS


@dataclass
class ImportConfig:
    binary_extensions: list[str] = field(default_factory=lambda: list(BINARY_EXTENSIONS))

    # Archives that list only files still get their intermediate folders
    synthesize_missing_dirs: bool = True

    text_encoding: str = "utf-8"
