"""Built-in pipeline steps registered on every engine."""

from .fetchers import FETCHERS
from .mixins import MIXINS
from .mixins_after import MIXINS_AFTER

__all__ = ["FETCHERS", "MIXINS", "MIXINS_AFTER"]
