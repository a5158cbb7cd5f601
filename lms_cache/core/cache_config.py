"""Cache configuration: tables, projections, indices and expiry per store"""

# Cache expiry in seconds, fixed for a store's lifetime
CACHE_EXPIRY = {
    "courses": 300,          # 5 minutes
    "enrollments": 180,      # 3 minutes
    "live_sessions": 120,    # 2 minutes
    "quizzes": 300,          # 5 minutes
    "notes": 300,            # 5 minutes
    "users": 300,            # 5 minutes
}

# Remote tables backing each store
TABLES = {
    "courses": "courses",
    "enrollments": "course_enrollments",
    "live_sessions": "live_sessions",
    "quizzes": "quizes",
    "notes": "notes",
    "users": "users",
    "user_roles": "user_roles",
}

# Column projections passed to the backend select
SELECTS = {
    "courses": "*,enrollments:course_enrollments(count)",
    "enrollments": "*,course:courses(*)",
    "enrollments_by_course": "*,user:users(id,name,email,avatar)",
    "live_sessions": "*,instructor:users(name)",
    "quizzes": "*",
    "notes": "id,course_id,name,file_url,created_at",
    "users": "*",
}

# (column, descending) ordering applied by the backend
ORDERING = {
    "live_sessions": ("start_time", True),
    "notes": ("created_at", True),
}

# Foreign keys maintained as derived indices
INDEX_FIELDS = {
    "courses": [],
    "enrollments": ["course_id", "user_id"],
    "live_sessions": ["course_id", "status"],
    "quizzes": ["course_id"],
    "notes": ["course_id"],
    "users": ["role"],
}

# Field a scoped fetch filters on; None means the store is global
SCOPE_FIELDS = {
    "courses": None,
    "enrollments": "user_id",
    "live_sessions": None,
    "quizzes": None,
    "notes": "course_id",
    "users": None,
}

# Stores that apply updates locally before the backend confirms them
OPTIMISTIC_STORES = {"courses", "live_sessions"}

# Scoped stores that keep one bucket per scope instead of replacing on a scope change
RETAINED_SCOPES = {"notes"}

# Stores whose creates land at the head of the collection
PREPEND_ON_CREATE = {"live_sessions"}

# Stores mirrored to the snapshot backend and restored on start
PERSISTED_STORES = ["courses", "enrollments"]

OFFLINE_MESSAGE = "You are offline"
