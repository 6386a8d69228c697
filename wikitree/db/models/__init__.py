from wikitree.db.models.page import Page
from wikitree.db.models.page_revision import PageRevision
from wikitree.db.models.share_link import ShareLink, ShareLinkAccess
from wikitree.db.models.tag import Tag, page_tags

__all__ = ["Page", "PageRevision", "ShareLink", "ShareLinkAccess", "Tag", "page_tags"]
