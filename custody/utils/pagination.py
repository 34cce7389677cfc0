from custody.utils.exceptions import ValidationError

MAX_PAGE_SIZE = 100


def parse_page_args(page, limit, default_limit=50):
    try:
        page = max(int(page) if page else 1, 1)
        limit = max(int(limit) if limit else default_limit, 1)
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers")
    return page, min(limit, MAX_PAGE_SIZE)


def paginate_query(query, page, limit):
    page, limit = parse_page_args(page, limit)
    items = query.offset((page-1)*limit).limit(limit).all()
    total = query.order_by(None).count()
    total_pages = (total + limit - 1) // limit
    return items, {"total": total, "page": page, "limit": limit, "total_pages": total_pages}
