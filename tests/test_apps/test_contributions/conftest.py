"""Shared fixtures for contributions app tests."""

import pytest
from django.core.files.base import ContentFile
from django.core.files.storage import storages

from server.apps.contributions.logic.intake_operations import (
    QUARANTINE_STORAGE_ALIAS,
    submit_contribution,
)


@pytest.fixture
def quarantine():
    """Quarantine bucket storage."""
    return storages[QUARANTINE_STORAGE_ALIAS]


@pytest.fixture
def contributor_id():
    """Id of the external contributor."""
    return 'user-00000099'


@pytest.fixture
def contribution(db, mock_s3, lab_id, contributor_id):
    """Submit a pending contribution with two files.

    Returns:
        Pending ContributionRequest.
    """
    return submit_contribution(
        lab_id,
        contributor_id,
        'Spectra',
        'Raw spectra from the March run',
        [
            ContentFile(b'wavelength,intensity\n', name='spectra.csv'),
            ContentFile(b'# Notes\n', name='notes.md'),
        ],
    )
