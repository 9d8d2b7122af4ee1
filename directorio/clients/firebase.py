"""
directorio/clients/firebase.py — Firebase Admin SDK initialisation
One default app per process, shared by Auth, Firestore and Storage.
"""
from __future__ import annotations

from pathlib import Path

import firebase_admin
from firebase_admin import credentials
from loguru import logger

from directorio.config import get_settings


def init_firebase() -> firebase_admin.App:
    """
    Initialise (once) and return the default Firebase app.
    Uses the service-account file from FIREBASE_CREDENTIALS when set,
    otherwise Application Default Credentials.
    """
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    settings = get_settings()
    options: dict[str, str] = {}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id
    if settings.firebase_storage_bucket:
        options["storageBucket"] = settings.firebase_storage_bucket

    if settings.firebase_credentials:
        key_path = Path(settings.firebase_credentials)
        if not key_path.exists():
            raise FileNotFoundError(f"Firebase credentials not found: {key_path}")
        cred = credentials.Certificate(str(key_path))
    else:
        cred = credentials.ApplicationDefault()

    app = firebase_admin.initialize_app(cred, options or None)
    logger.info(f"Firebase initialised (project={settings.firebase_project_id or 'default'}).")
    return app
