"""
Keepsake: Bookmark Archive Generator

Fetches bookmarked pages, stores them as durable offline archives
(page captures and document exports), serves resources back out of those
archives and folds archived bookmarks into long-form reading documents.
"""

__version__ = "1.0"
__author__ = "Keepsake Project"
__description__ = "Bookmark Archive Generator"
