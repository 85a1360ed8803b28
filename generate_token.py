# generate_token.py

import os
import sys
from google_auth_oauthlib.flow import InstalledAppFlow

# Import configuration constants
from config import CREDENTIALS_FILE, TOKEN_FILE, SCOPES


def generate_token(credentials_file=CREDENTIALS_FILE, token_file=TOKEN_FILE):
    """
    Runs the OAuth 2.0 authorization flow in the browser and stores the resulting token.

    The webhook service itself never opens a browser; it only reads (and refreshes)
    the token written here.

    Args:
        credentials_file (str): Path to the OAuth client JSON downloaded from Google Cloud Console.
        token_file (str): Path the authorized token is written to.

    Returns:
        bool: True if the token was saved, False otherwise.
    """
    if not os.path.exists(credentials_file):
        print(
            f"Error: '{credentials_file}' not found. "
            "Please download your OAuth client JSON from Google Cloud Console "
            "and place it in the project directory."
        )
        return False

    flow = InstalledAppFlow.from_client_secrets_file(credentials_file, SCOPES)
    creds = flow.run_local_server(port=0)

    print(f"Saving credential file to: {token_file}")
    with open(token_file, 'w') as token:
        token.write(creds.to_json())
    return True


if __name__ == "__main__":
    sys.exit(0 if generate_token(*sys.argv[1:3]) else 1)
