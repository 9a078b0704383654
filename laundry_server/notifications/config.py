"""
Configuration for the laundry notification service.

IMPORTANT: You must provide the Firebase Admin SDK credentials file.
Download it from Firebase Console > Project Settings > Service Accounts > Generate new private key
Save it as 'firebase-admin-key.json' in this directory, or point
FIREBASE_CREDENTIALS_PATH at it.
"""
import os

# Path to Firebase Admin SDK credentials
# Download from: Firebase Console > Project Settings > Service Accounts
FIREBASE_CREDENTIALS_PATH = os.environ.get(
    'FIREBASE_CREDENTIALS_PATH',
    os.path.join(os.path.dirname(__file__), 'firebase-admin-key.json'),
)

# Realtime Database configuration
# The database URL is shown at the top of the Realtime Database page,
# e.g. https://<project>-default-rtdb.europe-west1.firebasedatabase.app
FIREBASE_CONFIG = {
    'database_url': os.environ.get('FIREBASE_DATABASE_URL', None),
    'rooms_path': os.environ.get('ROOMS_PATH', '/rooms'),
}

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

# Icon shown by browsers for web push notifications
NOTIFICATION_ICON = os.environ.get('NOTIFICATION_ICON', '/icons/icon-192.png')

# Machine types scanned for availability, in order
MACHINE_TYPES = ('washer', 'dryer')

# FCM caps a multicast message at 500 tokens
FCM_MAX_TOKENS_PER_MULTICAST = 500

# Realtime Database keys cannot contain . $ # [ ] /
DESTINATION_KEY_MAX_LENGTH = 100

# Notification type definitions
# Titles and bodies are format strings filled by the notifier.
NOTIFICATION_TYPES = {
    'machine_finished': {
        'title': '✅ {machine_name} Finished!',
        'body': 'Your laundry is ready for pickup.',
    },
    'machine_available': {
        'title': '\U0001F514 {type_label} Available!',
        'body': 'A {machine_type} is now free in your laundry room.',
    },
}
