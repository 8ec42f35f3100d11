# Grid constants
START_HOUR = 8  # 8 AM
END_HOUR = 22  # 10 PM, exclusive
DAYS = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

TEACHERS = [
    "Bruno", "Carol", "Deluca", "Ester", "Leandro", "Lesley",
    "Livia", "Nataly", "Nino", "Pedro", "Priscilla", "Ricardo",
    "Samuel", "Thiago", "Vickie",
]

# Local cache slot
STORAGE_KEY = "timetable_schedules"
DEFAULT_LOCAL_CACHE_PATH = "timetable_cache.db"

# Schedules API
API_ENDPOINT = "/api/schedules"
KV_SCHEDULES_KEY = "all_schedules"
KV_LAST_UPDATED_KEY = "last_updated"
KV_BINDING_NAME = "KV_SCHEDULES"

# Firestore document holding the whole roster
SCHEDULE_COLLECTION_PATH = "schedules"
SCHEDULE_DOCUMENT_ID = "all_schedules"

# Sync timing constants (seconds)
POLL_INTERVAL = 2.0
SAVE_DEBOUNCE = 0.8
SELF_WRITE_GRACE = 1.5
STATUS_RESET_DELAY = 2.0
HTTP_TIMEOUT = 10.0

# Scheduler job ids
SAVE_JOB_ID = "debounced_save"
STATUS_RESET_JOB_ID = "status_reset"
SELF_WRITE_JOB_ID = "self_write_expiry"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}
