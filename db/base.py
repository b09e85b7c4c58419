import os

import firebase_admin
from firebase_admin import credentials, firestore, storage

from shared.config import SECRETS_DIR, FIREBASE_STORAGE_BUCKET

_app = None


def _init_app():
    global _app
    if _app is not None:
        return _app

    firebase_path = os.path.join(SECRETS_DIR, "firebase.json")
    options = {"storageBucket": FIREBASE_STORAGE_BUCKET} if FIREBASE_STORAGE_BUCKET else None

    if os.path.exists(firebase_path):
        cred = credentials.Certificate(firebase_path)
        _app = firebase_admin.initialize_app(cred, options)
    else:
        # application default credentials (Cloud Run, emulator, gcloud auth)
        _app = firebase_admin.initialize_app(options=options)
    return _app


def get_db():
    _init_app()
    return firestore.client()


def get_bucket():
    _init_app()
    return storage.bucket()
