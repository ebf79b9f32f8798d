"""Provider rules registered on every engine."""

from . import rutube_ru, vimeo_com, youtube_com

DOMAINS = [youtube_com.RULE, vimeo_com.RULE, rutube_ru.RULE]

__all__ = ["DOMAINS"]
