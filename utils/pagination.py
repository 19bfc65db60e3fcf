from flask import request


def page_args(default_limit: int = 10, max_limit: int = 50) -> tuple[int, int]:
    page = max(request.args.get("page", 1, type=int) or 1, 1)
    limit = request.args.get("limit", default_limit, type=int) or default_limit
    return page, max(1, min(limit, max_limit))


def paginate(query, default_limit: int = 10):
    page, limit = page_args(default_limit)
    return query.paginate(page=page, per_page=limit, error_out=False)


def pagination_to_dict(page):
    return {
        "current": page.page,
        "total_pages": page.pages,
        "total": page.total,
        "has_next": page.has_next,
        "has_prev": page.has_prev,
    }
