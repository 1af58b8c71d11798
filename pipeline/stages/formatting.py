"""
Output Path Formatting
======================

Renders artifact file names from a naming template.
"""

import logging
import re
import secrets
from pathlib import Path
from typing import Callable, Optional, Union

from pipeline_configs import DEFAULT_OUTPUT_FILE_FORMAT

logger = logging.getLogger(__name__)

HASH_TOKEN_BYTES = 8
PLACEHOLDER_PATTERN = re.compile(r"\[(filename|ext|compressExt|hash)\]")


def random_token() -> str:
    return secrets.token_hex(HASH_TOKEN_BYTES)


class OutputPathResolver:
    """
    Computes artifact paths from a template.

    Supported placeholders:
        [filename]     source name without its extension
        [ext]          source extension without the dot
        [compressExt]  artifact extension of the codec
        [hash]         random token, one per resolve() call
    """

    def __init__(self, token_factory: Callable[[], str] = random_token):
        self.token_factory = token_factory

    def resolve(self,
                destination_dir: Union[str, Path],
                source_file_name: str,
                template: Optional[str],
                codec_ext: str) -> Path:
        source = Path(source_file_name)
        filename = source.stem
        ext = source.suffix[1:]

        if template is None:
            if not ext:
                return Path(destination_dir) / f"{source.name}.{codec_ext}"
            template = DEFAULT_OUTPUT_FILE_FORMAT

        values = {
            'filename': filename,
            'ext': ext,
            'compressExt': codec_ext,
        }
        if '[hash]' in template:
            values['hash'] = self.token_factory()

        # One pass, inserted text is never substituted again
        rendered = PLACEHOLDER_PATTERN.sub(lambda m: values[m.group(1)], template)
        return Path(destination_dir) / rendered
