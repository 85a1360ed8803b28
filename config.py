# config.py

# --- Google API Configuration ---
# Path to your downloaded client_secret.json (or credentials.json) file.
# This file contains your OAuth 2.0 client ID and secret.
CREDENTIALS_FILE = 'credentials.json'

# Token file generated by generate_token.py.
# This stores the user's refresh token for subsequent runs.
TOKEN_FILE = 'token.json'

# 'https://www.googleapis.com/auth/gmail.modify': Allows reading messages, marking them as read
# and moving them to the trash. Deleting requires no broader scope when messages are trashed.
SCOPES = ['https://www.googleapis.com/auth/gmail.modify']

# --- Service Configuration ---
# Path to the JSON file containing selectors, the callback and processing options.
CONFIG_FILE = 'config.json'

# --- Email Fetching Configuration ---
# Page size used when listing unread emails. All pages are read.
MAX_EMAIL_FETCH_RESULTS = 100

# Gmail search query used to find candidate emails.
UNREAD_QUERY = 'is:unread'

# --- Callback Defaults ---
DEFAULT_TIMEOUT = '24s'
DEFAULT_RETRIES = 0
DEFAULT_RETRY_DELAY = '0s'
DEFAULT_ATTACHMENT_STRATEGY = 'bundle'
DEFAULT_ATTACHMENT_FIELD_NAME = 'attachment'

# Status codes treated as a successful delivery when callback.expectedStatus is not set.
DEFAULT_EXPECTED_STATUS = tuple(range(200, 400))

# --- Processing Defaults ---
DEFAULT_PROCESSED_ACTION = 'markRead'
DEFAULT_LOG_LEVEL = 'info'
