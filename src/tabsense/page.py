"""Page sources for running outside a browser."""

import asyncio
from pathlib import Path
from typing import Optional, Union


class TextFilePageSource:
    """Serves a text file as the page content."""

    def __init__(self, path: Union[str, Path], language: Optional[str] = None) -> None:
        self.path = Path(path)
        self.language = language

    async def get_page_text(self) -> str:
        return await asyncio.to_thread(self.path.read_text, encoding="utf-8", errors="replace")

    async def get_page_language(self) -> Optional[str]:
        return self.language
