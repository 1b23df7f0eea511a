from sqlalchemy import Column, BigInteger, String, Float, Integer, DateTime, Enum, Index
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime
from models.base import Base, AnalysisType


class CategoryInsight(Base):
    """
    Aggregate statistics per category.
    
    Derived data: recomputed from the products table after every load and
    never edited independently.
    """
    __tablename__ = "category_insights"
    
    id = Column(BigInteger, primary_key=True, autoincrement=True)
    category = Column(String(1000), unique=True, nullable=False, index=True)
    
    total_products = Column(Integer, nullable=False, default=0)
    average_rating = Column(Float, nullable=False, default=0.0)
    average_price = Column(Float, nullable=False, default=0.0)
    average_discount = Column(Float, nullable=False, default=0.0)
    top_rated_product = Column(String(1000), nullable=True)
    
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class TrendAnalysis(Base):
    """Dated histogram snapshot appended after each load"""
    __tablename__ = "trend_analyses"
    
    id = Column(BigInteger, primary_key=True, autoincrement=True)
    analysis_type = Column(Enum(AnalysisType), nullable=False, index=True)
    period = Column(String(10), nullable=False)  # ISO date, YYYY-MM-DD
    metrics = Column(JSONB, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    
    __table_args__ = (
        Index("idx_trend_type_period", "analysis_type", "period"),
    )
