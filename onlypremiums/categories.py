"""
Built-in product categories.
"""

from __future__ import annotations

from onlypremiums.domain import Category

ALL_CATEGORY = Category(
    id="all",
    name="All Categories",
    description="Browse all premium subscriptions",
    icon="🌟",
    color="bg-gradient-to-r from-purple-500 to-pink-500",
    display_order=0,
)

CATEGORIES: dict[str, Category] = {
    c.id: c
    for c in (
        Category("entertainment", "Entertainment", "Streaming, music and media", "🎬",
                 "bg-gradient-to-r from-red-500 to-pink-500", 1),
        Category("developer-tools", "Developer Tools", "IDEs, hosting and developer services", "💻",
                 "bg-gradient-to-r from-gray-700 to-gray-900", 2),
        Category("productivity", "Productivity", "Office suites, notes and planning", "⚡",
                 "bg-gradient-to-r from-blue-500 to-cyan-500", 3),
        Category("design", "Design", "Creative and design software", "🎨",
                 "bg-gradient-to-r from-purple-500 to-indigo-500", 4),
        Category("ai-tools", "AI Tools", "AI assistants and generators", "🤖",
                 "bg-gradient-to-r from-green-500 to-emerald-500", 5),
        Category("business", "Business", "CRM, analytics and business tools", "💼",
                 "bg-gradient-to-r from-yellow-500 to-orange-500", 6),
        Category("education", "Education", "Courses and learning platforms", "📚",
                 "bg-gradient-to-r from-teal-500 to-blue-500", 7),
        Category("communication", "Communication", "Messaging and video calls", "💬",
                 "bg-gradient-to-r from-sky-500 to-indigo-500", 8),
    )
}

DEFAULT_CATEGORY = "productivity"


def get_category_info(category_id: str) -> Category:
    if category_id == ALL_CATEGORY.id:
        return ALL_CATEGORY
    return CATEGORIES.get(category_id, CATEGORIES[DEFAULT_CATEGORY])


def is_valid_category(category_id: str) -> bool:
    return category_id in CATEGORIES


def sorted_categories(include_all: bool = False) -> list[Category]:
    ordered = sorted(CATEGORIES.values(), key=lambda c: c.display_order)
    return [ALL_CATEGORY, *ordered] if include_all else ordered


__all__ = (
    "ALL_CATEGORY",
    "CATEGORIES",
    "DEFAULT_CATEGORY",
    "get_category_info",
    "is_valid_category",
    "sorted_categories",
)
