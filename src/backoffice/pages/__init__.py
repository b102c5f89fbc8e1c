"""Page configurations for the hotel and restaurant back-office lists."""

from backoffice.pages.registry import PAGES, build_controller, get_page, page_names

__all__ = ["PAGES", "build_controller", "get_page", "page_names"]
