# =============================================================================
# Tests for folder listing, trees and the Folder model
# =============================================================================

import gc

import pytest

from imapwire.core import Folder
from imapwire.imap.channel import ResponseLine
from imapwire.imap.errors import FolderFetchingError, ProtocolError
from imapwire.imap.folders import parse_list_line

from fakes import FakeServer


def list_patterns(server):
    lines = [line for t in server.transports for line in t.received]
    return [line.split(" ", 2)[2] for line in lines if line.split(" ")[1:2] == ["LIST"]]


class TestParseListLine:

    def test_quoted_path(self):
        entry = parse_list_line(ResponseLine('* LIST (\\HasNoChildren) "/" "INBOX/Sent"'))
        assert entry.path == "INBOX/Sent"
        assert entry.delimiter == "/"
        assert entry.attributes == ("\\HasNoChildren",)

    def test_nil_delimiter_and_literal_name(self):
        entry = parse_list_line(ResponseLine("* LIST () NIL {12}", [b"Entw&APw-rfe"]))
        assert entry.path == "Entw&APw-rfe"
        assert entry.delimiter is None

    def test_other_lines_are_ignored(self):
        assert parse_list_line(ResponseLine("* 3 EXISTS")) is None

    def test_malformed(self):
        with pytest.raises(ProtocolError):
            parse_list_line(ResponseLine('* LIST "/" INBOX'))


class TestTree:

    def test_inbox_with_one_child(self, account):
        from imapwire.imap import IMAPClient

        server = FakeServer()
        server.add_folder("INBOX").add_folder("INBOX/Sent")
        client = IMAPClient(account, transport_factory=server.transport_factory)

        folders = client.get_folders(hierarchical=True)

        assert [f.path for f in folders] == ["INBOX"]
        inbox = folders[0]
        assert inbox.has_children
        assert [c.name for c in inbox.children] == ["Sent"]
        assert inbox.children[0].path == "INBOX/Sent"
        client.disconnect()

    def test_child_paths_follow_parent(self, connected):
        for root in connected.get_folders():
            for folder in root.walk():
                for child in folder.children:
                    assert child.path == f"{folder.path}{folder.delimiter}{child.name}"

    def test_leaves_are_not_listed(self, server, connected):
        connected.get_folders()

        # Top level, then only the two folders flagged \HasChildren
        assert list_patterns(server) == ['"" "%"', '"" "INBOX/%"', '"" "Archive/%"']

    def test_flat_listing(self, server, connected):
        folders = connected.get_folders(hierarchical=False)

        assert [f.path for f in folders] == ["INBOX", "INBOX/Sent", "Archive", "Archive/2025", "Entw&APw-rfe"]
        assert all(not f.children for f in folders)
        assert list_patterns(server) == ['"" "*"']

    def test_names_are_decoded(self, connected):
        folder = connected.get_folder_by_path("Entw&APw-rfe")
        assert folder.full_name == "Entwürfe"
        assert folder.name == "Entwürfe"
        assert str(folder) == "Entwürfe"

    def test_attributes(self, connected):
        archive = connected.get_folder("Archive")
        assert archive.no_select
        assert archive.has_children
        assert not archive.marked

    def test_children_of_parent(self, connected):
        inbox = connected.get_folder("INBOX")
        children = connected.get_folders(parent=inbox)
        assert [c.path for c in children] == ["INBOX/Sent"]

    def test_with_status_skips_noselect(self, server, connected):
        folders = connected.get_folders_with_status(hierarchical=False)
        by_path = {f.path: f for f in folders}

        assert by_path["INBOX"].status["MESSAGES"] == 2
        assert by_path["INBOX"].status["UNSEEN"] == 1
        assert by_path["Archive"].status is None
        assert server.count("STATUS") == 4

    def test_listing_failure(self, server, connected):
        server.handlers["LIST"] = lambda t, tag, args, literals: t.send(f"{tag} NO listing disabled")
        with pytest.raises(FolderFetchingError) as excinfo:
            connected.get_folders()
        assert isinstance(excinfo.value.__cause__, ProtocolError)


class TestLookup:

    def test_by_name(self, connected):
        assert connected.get_folder_by_name("Sent").path == "INBOX/Sent"

    def test_by_path(self, connected):
        assert connected.get_folder_by_path("Archive/2025").name == "2025"

    def test_by_decoded_path(self, connected):
        assert connected.get_folder_by_path("Entwürfe").path == "Entw&APw-rfe"

    def test_get_folder_uses_delimiter(self, connected):
        assert connected.get_folder("INBOX/Sent").path == "INBOX/Sent"
        assert connected.get_folder("Sent").path == "INBOX/Sent"
        assert connected.get_folder("Sent", delimiter="/") is None
        assert connected.get_folder("2025", delimiter=False).path == "Archive/2025"

    def test_missing(self, connected):
        assert connected.get_folder("Nope") is None


class TestFolderModel:

    def test_attributes_are_case_insensitive(self):
        folder = Folder(path="X", attributes=["\\NOSELECT", "\\marked", "\\NoInferiors", "\\Referral"])
        assert folder.no_select and folder.marked and folder.no_inferiors and folder.referral

    def test_parent_path(self):
        assert Folder(path="INBOX/Sent/2026").parent_path == "INBOX/Sent"
        assert Folder(path="INBOX").parent_path is None

    def test_unbound_folder(self):
        with pytest.raises(FolderFetchingError):
            Folder(path="INBOX").open()

    def test_folder_outliving_client(self, account, server):
        from imapwire.imap import IMAPClient

        client = IMAPClient(account, transport_factory=server.transport_factory)
        folder = client.get_folder("INBOX")
        client.disconnect()
        del client
        gc.collect()

        with pytest.raises(FolderFetchingError):
            folder.open()

    def test_operations_delegate_to_client(self, server, connected):
        inbox = connected.get_folder("INBOX")

        status = inbox.open()
        assert status["EXISTS"] == 2
        assert connected.active_folder == "INBOX"
        assert inbox.get_status()["MESSAGES"] == 2

        overview = inbox.overview()
        assert [m.subject for m in overview.values()] == ["First", "Second"]

    def test_save_message(self, connected, temp_dir):
        inbox = connected.get_folder("INBOX")
        target = inbox.save_message(101, temp_dir / "101.eml")

        content = target.read_bytes()
        assert content.startswith(b"From: Alice Example")
        assert content.endswith(b"Hello there.\r\n")
