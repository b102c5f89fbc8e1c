"""Back-office list pages: fetch, filter, sort, paginate and mutate entity lists."""
