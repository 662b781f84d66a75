# services/cache_keys.py

def course_key(course_id: str) -> str:
    return f"course:{course_id}"

def reviews_page_key(course_id: str, page: int, limit: int) -> str:
    return f"reviews:{course_id}:{page}:{limit}"

def reviews_prefix(course_id: str) -> str:
    return f"reviews:{course_id}:"

def local_progress_key(course_id: str, user_id: str = None) -> str:
    # same shape the browser used for its localStorage entry
    return f"course_progress_{course_id}_{user_id or 'guest'}"

# Viewer / session
def viewer_key(token_digest: str) -> str:
    return f"viewer:{token_digest}"

def certificate_guard_key(user_id: str, course_id: str) -> str:
    return f"certificate_guard:{user_id}:{course_id}"

def certificate_state_key(user_id: str, course_id: str) -> str:
    return f"certificate_state:{user_id}:{course_id}"

def vote_lock_key(user_id: str, review_id: str) -> str:
    return f"review_vote:{user_id}:{review_id}"

def notifications_key(user_id: str) -> str:
    return f"notifications:{user_id}"

# Admin snapshots
def admin_orders_key(params_hash: str) -> str:
    return f"admin:orders:{params_hash}"

def admin_analytics_key(period: str) -> str:
    return f"admin:analytics:{period}"

def coupon_stats_key() -> str:
    return "admin:coupons:stats"
