"""confluence2md - convert Confluence HTML exports to clean Markdown.

Quick single-page usage::

    from confluence2md import convert_file

    page = convert_file("export/DOCS/Getting-Started_65538.html")
    print(page.title)
    print(page.markdown)

Whole export::

    from pathlib import Path
    from confluence2md import OutputWriter, convert_batch

    sources = sorted(Path("export").rglob("*.html"))
    writer = OutputWriter("out")
    pages = convert_batch(sources, on_error="include")
    writer.write_all([(page, src) for src, page in zip(sources, pages) if page is not None])
    writer.close()

Plugin extension points::

    from confluence2md import register_element_handler

    class StatusMacro:
        name = "status"
        def matches(self, tag):
            return "status-macro" in (tag.get("class") or [])
        def convert(self, tag, converter, scope):
            return f"**[{tag.get_text(strip=True)}]**"

    register_element_handler(StatusMacro())
"""

from confluence2md.converter import ConversionError, convert_batch, convert_file, convert_html
from confluence2md.items import ConverterOptions, PageConversion
from confluence2md.pipelines import OutputWriter
from confluence2md.plugins import register_cleanup_pass, register_element_handler
from confluence2md.profiles import load_options

__version__ = "0.1.0"
__all__ = [
    "ConversionError",
    "ConverterOptions",
    "OutputWriter",
    "PageConversion",
    "convert_batch",
    "convert_file",
    "convert_html",
    "load_options",
    "register_cleanup_pass",
    "register_element_handler",
]
