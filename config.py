# ==========================================
# Mixpanel -> PostHog Migration Config
# ==========================================
# Credentials below can also be supplied through environment variables of
# the same name; the environment wins.




# ---- Source (Mixpanel raw export API) -------------------------------------------------
MIXPANEL_API_URL    = "https://data.mixpanel.com/api/2.0"  # EU: https://data-eu.mixpanel.com/api/2.0
MIXPANEL_PROJECT_ID = ""
MIXPANEL_USERNAME   = ""   # service account username
MIXPANEL_PASSWORD   = ""   # service account secret

# Inclusive date range, YYYY-MM-DD. Start small on large projects.
FROM_DATE = ""  # e.g., "2024-01-01"
TO_DATE   = ""  # e.g., "2024-01-31"

# Days exported per request. Each chunk is held in memory before loading,
# so keep this small for high-volume projects.
CHUNK_SIZE_DAYS = 7




# ---- Destination (PostHog) ------------------------------------------------------------
POSTHOG_PROJECT_KEY = ""                          # project API key (phc_...)
POSTHOG_ENDPOINT    = "https://us.i.posthog.com"  # EU: https://eu.i.posthog.com
IMPORT_TAG          = "prod-import-1"             # stored on every event as $go_flag




# ---- Pacing & reliability -------------------------------------------------------------
DELAY_MS         = 1      # pause between queued events
BATCH_SIZE       = 100
REQUEST_TIMEOUTS = 120    # seconds
MAX_RETRIES      = 5
RETRY_BACKOFF_S  = 1.5    # exponential




# ---- Safety --------------------------------------------------------------------
DRY_RUN = True      # True = export and transform only; do NOT send to PostHog
VERBOSE = True      # print progress
SETTLE_WAIT_S = 0   # seconds to wait after the run for PostHog to catch up
REPORTS_DIR = "migration_runs"
REPORT_SAMPLE_LIMIT = 20
