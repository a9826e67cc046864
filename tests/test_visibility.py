"""Tests for folder and document visibility.

The Python predicate and the SQL clause are checked against each other over
every combination of role, visibility, creatorship and grant.
"""

import itertools
from types import SimpleNamespace

import pytest

from docvault.core.roles import Role, Visibility
from docvault.models.document import Document
from docvault.models.folder import Folder, FolderGrant
from docvault.repositories.document_repository import DocumentRepository
from docvault.repositories.folder_repository import FolderRepository
from docvault.services.permission_service import (
    can_manage_folder_access,
    can_view_folder,
    can_view_unfiled_document,
)
from tests.conftest import as_auth

ROLE_OPTIONS = [None, Role.READER, Role.EDITOR, Role.ADMIN, Role.SUPER_ADMIN]


def _expected(role, visibility, is_creator, has_grant):
    if role is None:
        return False
    return (
        is_creator
        or role is Role.SUPER_ADMIN
        or visibility is Visibility.TEAM
        or (visibility is Visibility.CUSTOM and has_grant)
    )


class TestCanViewFolder:

    @pytest.mark.parametrize(
        "role,visibility,is_creator,has_grant",
        list(itertools.product(ROLE_OPTIONS, list(Visibility), [True, False], [True, False])),
    )
    def test_rule_grid(self, role, visibility, is_creator, has_grant):
        viewer = SimpleNamespace(user_id="viewer", role=role)
        folder = SimpleNamespace(created_by="viewer" if is_creator else "someone-else", visibility=visibility)
        assert can_view_folder(viewer, folder, has_grant) is _expected(role, visibility, is_creator, has_grant)

    def test_accepts_raw_visibility_strings(self):
        viewer = SimpleNamespace(user_id="v", role=Role.READER)
        assert can_view_folder(viewer, SimpleNamespace(created_by="x", visibility="team"), False)
        assert not can_view_folder(viewer, SimpleNamespace(created_by="x", visibility="private"), True)

    def test_grant_ignored_unless_custom(self):
        viewer = SimpleNamespace(user_id="v", role=Role.READER)
        folder = SimpleNamespace(created_by="x", visibility=Visibility.PRIVATE)
        assert can_view_folder(viewer, folder, has_grant=True) is False

    def test_creator_without_role_sees_nothing(self):
        viewer = SimpleNamespace(user_id="v", role=None)
        folder = SimpleNamespace(created_by="v", visibility=Visibility.PRIVATE)
        assert can_view_folder(viewer, folder, False) is False

    def test_manage_access_needs_admin_and_visibility(self):
        folder = SimpleNamespace(created_by="x", visibility=Visibility.PRIVATE)
        admin = SimpleNamespace(user_id="a", role=Role.ADMIN)
        super_admin = SimpleNamespace(user_id="s", role=Role.SUPER_ADMIN)
        editor_creator = SimpleNamespace(user_id="x", role=Role.EDITOR)
        assert can_manage_folder_access(admin, folder, False) is False
        assert can_manage_folder_access(super_admin, folder, False) is True
        assert can_manage_folder_access(editor_creator, folder, False) is False

    def test_unfiled_document_rules(self):
        doc = SimpleNamespace(user_id="uploader")
        assert can_view_unfiled_document(SimpleNamespace(user_id="uploader", role=Role.READER), doc)
        assert can_view_unfiled_document(SimpleNamespace(user_id="other", role=Role.SUPER_ADMIN), doc)
        assert not can_view_unfiled_document(SimpleNamespace(user_id="other", role=Role.ADMIN), doc)
        assert not can_view_unfiled_document(SimpleNamespace(user_id="uploader", role=None), doc)


class TestSqlClauseAgreesWithPredicate:

    @pytest.fixture()
    def world(self, db, make_user):
        """One viewer per role option plus one folder per (creator, visibility, grantee)."""
        viewers = [make_user(role) for role in ROLE_OPTIONS]
        outsider = make_user(Role.EDITOR)
        creators = viewers + [outsider]
        folders = []
        for n, (creator, visibility) in enumerate(itertools.product(creators, list(Visibility))):
            folder = Folder(id=f"f-{n}", name=f"F{n}", created_by=creator.user_id,
                            owner_id=creator.user_id, visibility=visibility)
            db.add(folder)
            folders.append(folder)
        db.flush()
        # Every custom folder grants the viewers at even positions.
        for folder in folders:
            if folder.visibility is Visibility.CUSTOM:
                for viewer in viewers[::2]:
                    db.add(FolderGrant(folder_id=folder.id, user_id=viewer.user_id))
        db.commit()
        return viewers, folders

    def test_folders(self, db, world):
        viewers, folders = world
        repo = FolderRepository(db)
        for viewer in viewers:
            auth = as_auth(viewer)
            visible = set(repo.visible_ids(auth.user_id, auth.role))
            for folder in folders:
                expected = can_view_folder(auth, folder, repo.has_grant(folder.id, auth.user_id))
                assert (folder.id in visible) is expected, (auth.role, folder.visibility, folder.created_by)

    def test_documents(self, db, world):
        viewers, folders = world
        docs = []
        for n, folder in enumerate(folders + [None]):
            for uploader in viewers[:2]:
                doc = Document(
                    id=f"d-{n}-{uploader.user_id}", name="x.pdf",
                    file_path=f"{uploader.user_id}/{n}_x.pdf", file_type="pdf", file_size=1,
                    folder_id=folder.id if folder else None, user_id=uploader.user_id,
                )
                db.add(doc)
                docs.append(doc)
        db.commit()

        folder_repo = FolderRepository(db)
        doc_repo = DocumentRepository(db)
        for viewer in viewers:
            auth = as_auth(viewer)
            visible = {d.id for d in doc_repo.list_visible(auth.user_id, auth.role, limit=10_000)}
            for doc in docs:
                if doc.folder_id is None:
                    expected = can_view_unfiled_document(auth, doc)
                else:
                    folder = db.get(Folder, doc.folder_id)
                    expected = can_view_folder(auth, folder, folder_repo.has_grant(folder.id, auth.user_id))
                assert (doc.id in visible) is expected, (auth.role, doc.id)


class TestScenarios:

    def test_private_folder_of_editor(self, db, make_user):
        editor, admin, super_admin = make_user(Role.EDITOR), make_user(Role.ADMIN), make_user(Role.SUPER_ADMIN)
        db.add(Folder(id="f", name="Mine", created_by=editor.user_id, visibility=Visibility.PRIVATE))
        db.commit()
        repo = FolderRepository(db)

        assert [f.id for f in repo.list_visible(editor.user_id, Role.EDITOR)] == ["f"]
        assert repo.list_visible(admin.user_id, Role.ADMIN) == []
        assert [f.id for f in repo.list_visible(super_admin.user_id, Role.SUPER_ADMIN)] == ["f"]

    def test_inactive_user_sees_nothing(self, db, make_user):
        creator = make_user(Role.EDITOR)
        inactive = make_user(Role.ADMIN, active=False)
        db.add(Folder(id="team", name="Team", created_by=creator.user_id, visibility=Visibility.TEAM))
        db.commit()
        auth = as_auth(inactive)
        assert auth.role is None
        assert FolderRepository(db).list_visible(auth.user_id, auth.role) == []
