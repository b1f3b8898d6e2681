"""HTML directory page."""

from html import escape
from itertools import groupby
from typing import Iterable, List

from .directory import NATIONAL_REGION, Station

OTHER_REGION = "其他"

PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="zh-CN">
<head>
<meta charset="utf-8">
<title>电台中转</title>
<style>
body {{ font-family: sans-serif; margin: 2em; }}
h2 {{ border-bottom: 1px solid #ccc; }}
li {{ margin: .3em 0; }}
code {{ color: #555; }}
</style>
</head>
<body>
<h1>电台中转</h1>
<p>{count} 个电台</p>
{sections}
</body>
</html>
"""


def _region_label(station: Station) -> str:
    return station.region or OTHER_REGION


def _region_order(label: str):
    # National first, catch-all last
    return (label != NATIONAL_REGION, label == OTHER_REGION, label)


def render_index(stations: Iterable[Station], base_url: str) -> str:
    """Render the station directory page.

    Args:
        stations: Stations to list.
        base_url: Base URL of the relay, used for the stream links.

    Returns:
        str: HTML document.
    """
    base_url = base_url.rstrip("/")
    ordered: List[Station] = sorted(
        stations, key=lambda s: (_region_order(_region_label(s)), s.name)
    )

    sections = []
    for region, members in groupby(ordered, key=_region_label):
        items = []
        for station in members:
            url = f"{base_url}/stream/{station.id}"
            subtitle = f" <small>{escape(station.subtitle)}</small>" if station.subtitle else ""
            items.append(
                f'<li><a href="{escape(url)}">{escape(station.name)}</a>{subtitle} '
                f"<code>{escape(url)}</code></li>"
            )
        sections.append(f"<h2>{escape(region)}</h2>\n<ul>\n" + "\n".join(items) + "\n</ul>")

    return PAGE_TEMPLATE.format(count=len(ordered), sections="\n".join(sections))
