"""
Pydantic schema for cleaned product records with validation
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional, Dict, Any


class ProductRecord(BaseModel):
    """
    Canonical, validated representation of one product row.
    
    Ensures:
    - Required text fields are non-empty
    - Prices are non-negative and discounted_price <= actual_price
    - Rating is within [0, 5] and rating_count is non-negative
    
    Field names are snake_case; the canonical camelCase names used by the
    column mapping (productId, discountedPrice, ...) are accepted as aliases.
    Columns that the mapping did not recognise travel in ``extra``.
    """
    
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )
    
    # Identity
    product_id: str = Field(..., min_length=1, max_length=255)
    product_name: str = Field(..., min_length=1, max_length=1000)
    category: str = Field(..., min_length=1, max_length=1000)
    
    # Pricing
    discounted_price: float = Field(..., ge=0)
    actual_price: float = Field(..., ge=0)
    discount_percentage: float = Field(0.0, ge=0, le=100)
    price_range: str = ""
    
    # Ratings
    rating: float = Field(0.0, ge=0, le=5)
    rating_count: int = Field(0, ge=0)
    
    # Optional free text / links
    about: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    user_review: Optional[str] = None
    review_title: Optional[str] = None
    img_link: Optional[str] = None
    product_link: Optional[str] = None
    
    # Aggregation placeholders
    mean_rating: Optional[float] = None
    product_count: int = 1
    average_rating_count: Optional[float] = None
    
    # Unmapped source columns
    extra: Dict[str, Any] = Field(default_factory=dict)
    
    @field_validator("product_name", "category")
    @classmethod
    def not_blank(cls, v):
        """Reject values that are only whitespace"""
        if not v.strip():
            raise ValueError("must not be blank")
        return v
    
    @model_validator(mode="after")
    def check_price_order(self):
        if self.discounted_price > self.actual_price:
            raise ValueError(
                f"discounted_price {self.discounted_price} exceeds actual_price {self.actual_price}"
            )
        return self
    
    def to_row(self) -> Dict[str, Any]:
        """Column values for the products table"""
        return self.model_dump(exclude={"extra"})
