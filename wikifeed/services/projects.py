from __future__ import annotations

PROJECTS = [
    "en",
    "fr",
    "es",
    "de",
    "ru",
    "ja",
    "nl",
    "it",
    "sv",
    "pl",
    "vi",
    "pt",
    "ar",
    "zh",
    "uk",
    "ro",
    "bg",
    "th",
]

WIKIMEDIA_URL = "https://wikimedia.org/api/rest_v1"

_API_URLS = {p: f"https://{p}.wikipedia.org/api/rest_v1" for p in PROJECTS}


def is_project(project: str) -> bool:
    return project in _API_URLS


def api_url(project: str) -> str:
    try:
        return _API_URLS[project]
    except KeyError:
        raise ValueError(f"project {project!r} is not allowed") from None
