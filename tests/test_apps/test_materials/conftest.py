"""Shared fixtures for materials app tests."""

import pytest
from django.core.files.base import ContentFile

from server.apps.materials.logic.file_operations import upload_file
from server.apps.materials.logic.folder_operations import create_folder
from server.apps.materials.spaces import LAB_MATERIALS


@pytest.fixture
def space():
    """Lab materials file space."""
    return LAB_MATERIALS


@pytest.fixture
def csv_content():
    """Small CSV file.

    Returns:
        ContentFile named data.csv.
    """
    return ContentFile(b'sample,value\n1,2\n', name='data.csv')


@pytest.fixture
def data_file(db, mock_s3, space, lab_id, actor_id, csv_content):
    """Upload data.csv to the lab root.

    Returns:
        FileRecord of the uploaded file.
    """
    return upload_file(space, lab_id, actor_id, 'data.csv', csv_content)


@pytest.fixture
def results_folder(db, space, lab_id, actor_id):
    """Create an empty 'Results' folder.

    Returns:
        Folder entity.
    """
    return create_folder(space, lab_id, actor_id, 'Results')
