from sqlalchemy import Column, BigInteger, String, Float, Integer, Text, DateTime, Index
from datetime import datetime
from models.base import Base


class Product(Base):
    """
    Cleaned product rows, one per product_id.
    
    Purpose:
    - Target of the loader's batch upsert (product_id is the conflict key)
    - Source for category insights and trend snapshots
    
    Design:
    - Every persisted row satisfies the cleaning invariants: non-empty
      name and category, 0 <= rating <= 5, discounted_price <= actual_price,
      rating_count >= 0
    - mean_rating, product_count and average_rating_count are per-row
      placeholders overwritten by later aggregation
    """
    __tablename__ = "products"
    
    id = Column(BigInteger, primary_key=True, autoincrement=True)
    product_id = Column(String(255), unique=True, nullable=False, index=True)
    
    # Core fields
    product_name = Column(String(1000), nullable=False)
    category = Column(String(1000), nullable=False, index=True)
    
    # Pricing
    discounted_price = Column(Float, nullable=False)
    actual_price = Column(Float, nullable=False)
    discount_percentage = Column(Float, nullable=False, default=0.0)
    price_range = Column(String(50), nullable=True, index=True)
    
    # Ratings
    rating = Column(Float, nullable=False, default=0.0)
    rating_count = Column(Integer, nullable=False, default=0)
    
    # Free text / links
    about = Column(Text, nullable=True)
    user_id = Column(String(255), nullable=True)
    user_name = Column(String(1000), nullable=True)
    user_review = Column(Text, nullable=True)
    review_title = Column(String(1000), nullable=True)
    img_link = Column(String(2048), nullable=True)
    product_link = Column(String(2048), nullable=True)
    
    # Aggregation placeholders
    mean_rating = Column(Float, nullable=True)
    product_count = Column(Integer, nullable=True, default=1)
    average_rating_count = Column(Float, nullable=True)
    
    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    __table_args__ = (
        Index("idx_product_category_rating", "category", "rating"),
    )
