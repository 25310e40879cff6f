from functools import lru_cache

from .synonyms import SynonymTaxonomy
from .types import SkillTaxonomy


@lru_cache(maxsize=1)
def default_taxonomy() -> SkillTaxonomy:
    return SynonymTaxonomy()


__all__ = ["SkillTaxonomy", "SynonymTaxonomy", "default_taxonomy"]
