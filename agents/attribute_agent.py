# agents/attribute_agent.py
# Tokenizer & attribute detection: search terms, material and product-type hints for a description.

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from utils.lexicons import NO_PRODUCT_TYPE, Lexicons, ProductTypeHint
from utils.text_rules import tokenize

logger = logging.getLogger(__name__)


@dataclass
class ProductAttributes:
    description: str
    terms: List[str] = field(default_factory=list)
    material: Optional[str] = None
    material_chapters: Tuple[str, ...] = ()
    product_type: ProductTypeHint = NO_PRODUCT_TYPE

    @property
    def query_lower(self) -> str:
        return self.description.lower()

    @property
    def enriched_query(self) -> str:
        """Description plus the product type's keywords, used for semantic search."""
        if not self.product_type.keywords:
            return self.description
        return f"{self.description} {' '.join(self.product_type.keywords)}"

    @property
    def expected_headings(self) -> Tuple[str, ...]:
        return self.product_type.headings


class AttributeAgent:
    def __init__(self, lexicons: Lexicons):
        self.lexicons = lexicons

    def detect(self, description: str, material_hint: Optional[str] = None,
               hint_material: Optional[str] = None, hint_product_type: Optional[str] = None) -> ProductAttributes:
        """
        Args:
            description: Free-text product description.
            material_hint: Material supplied by the user; overrides detection.
            hint_material: Material suggested by an interpretation collaborator, used only
                when nothing was supplied or detected.
            hint_product_type: Product type suggested by an interpretation collaborator,
                used only when detection finds none.

        Returns:
            ProductAttributes (empty terms for an empty description).
        """
        description = (description or "").strip()
        terms = tokenize(description)

        material = material_hint.strip().lower() if material_hint and material_hint.strip() else None
        if material is None:
            material = self.lexicons.materials.detect(description)
        if material is None and hint_material:
            if self.lexicons.materials.chapters_for(hint_material):
                material = hint_material.lower()

        product_type = self.lexicons.product_types.detect(description)
        if product_type is NO_PRODUCT_TYPE and hint_product_type:
            product_type = self.lexicons.product_types.get(hint_product_type)

        attrs = ProductAttributes(
            description=description,
            terms=terms,
            material=material,
            material_chapters=self.lexicons.materials.chapters_for(material),
            product_type=product_type,
        )
        logger.debug(
            "Attributes for '%s': terms=%s material=%s chapters=%s product_type=%s",
            description, terms, material, attrs.material_chapters, product_type.type,
        )
        return attrs
