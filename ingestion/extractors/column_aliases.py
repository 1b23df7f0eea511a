"""
Canonical field -> accepted header variants.

Order matters twice: canonical fields are resolved top to bottom, and within
a field the first alias that matches any header wins. Keep both orders stable;
uploads from existing exports rely on them.
"""

from typing import Dict, List

COLUMN_ALIASES: Dict[str, List[str]] = {
    "productId": ["product_id", "productid", "id", "pid"],
    "productName": ["product_name", "name", "title", "product"],
    "category": ["category", "cat", "category_name"],
    "discountedPrice": ["discounted_price", "discount_price", "sale_price", "price"],
    "actualPrice": ["actual_price", "original_price", "mrp", "list_price"],
    "discountPercentage": ["discount_percentage", "discount", "discount_percent"],
    "rating": ["rating", "avg_rating", "rate", "score"],
    "ratingCount": ["rating_count", "num_ratings", "reviews_count", "total_reviews"],
    "about": ["about_product", "description", "about", "product_description"],
    "userId": ["user_id", "userid", "customer_id"],
    "userName": ["user_name", "username", "customer_name", "reviewer"],
    "userReview": ["review_content", "review", "comment", "user_review"],
    "reviewTitle": ["review_title", "title", "review_header"],
    "imgLink": ["img_link", "image_url", "image", "photo"],
    "productLink": ["product_link", "url", "link", "product_url"],
}

CANONICAL_FIELDS = list(COLUMN_ALIASES)

# Headers checked (on the first record) to count duplicate rows before cleaning
ID_COLUMNS = ("product_id", "productId")

# Cell values treated as missing by the quality report
MISSING_MARKERS = ("", "N/A")
