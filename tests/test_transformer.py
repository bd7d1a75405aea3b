"""Tests for record transformers."""

from datetime import UTC, datetime

import pytest

from convex_migration.client.exceptions import SkipRecordError, TransformationError
from convex_migration.migration.models import ReferenceType, TagReference
from convex_migration.migration.transformer import (
    PropertyTransformer,
    TagTransformer,
    UserTransformer,
    build_reference_index,
    classify_record_type,
    format_address,
    normalize_timestamp,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


class TestUserTransformer:
    def test_membership_and_email(self, mapper):
        user = UserTransformer(mapper, NOW).transform(
            {
                "_id": "u1",
                "email": "A@x.com",
                "team": [{"teamId": "team-k1", "status": "Approved"}],
            }
        )

        assert user["email"] == "a@x.com"
        assert user["orgIds"] == [{"id": "org-t1", "role": "org:member", "status": "active"}]
        assert user["activeOrgId"] == "org-t1"
        assert user["mongoId"] == "u1"

    def test_unapproved_membership_is_pending(self, mapper):
        user = UserTransformer(mapper, NOW).transform(
            {"_id": "u1", "email": "b@x.com", "team": [{"teamId": "team-k1", "status": "Invited"}]}
        )
        assert user["orgIds"][0]["status"] == "pending"

    def test_unmapped_teams_are_dropped(self, mapper):
        user = UserTransformer(mapper, NOW).transform(
            {
                "_id": "u1",
                "email": "c@x.com",
                "team": [{"teamId": "other"}, {"teamId": "team-k1", "status": "approved"}],
            }
        )
        assert [m["id"] for m in user["orgIds"]] == ["org-t1"]

    def test_empty_membership_is_skipped(self, mapper):
        with pytest.raises(SkipRecordError):
            UserTransformer(mapper, NOW).transform(
                {"_id": "u1", "email": "d@x.com", "team": [{"teamId": "unmapped"}]}
            )

    def test_missing_email_is_an_error(self, mapper):
        with pytest.raises(TransformationError) as exc_info:
            UserTransformer(mapper, NOW).transform({"_id": "u9", "team": []})
        assert exc_info.value.source_id == "u9"

    def test_profile_fields(self, mapper):
        user = UserTransformer(mapper, NOW).transform(
            {
                "_id": "u1",
                "email": "e@x.com",
                "firstName": "Ada",
                "lastName": "Lovelace",
                "phone": "555-0100",
                "profileImg": "https://img/ada.png",
                "isOnBoarded": True,
                "lastActive": datetime(2024, 1, 2, 3, 4, 5, 678000),
                "team": [{"teamId": "team-k1", "status": "Approved"}],
            }
        )

        assert user["name"] == "Ada Lovelace"
        assert user["image"] == "https://img/ada.png"
        assert user["isOnboardingComplete"] is True
        assert user["presence"] == {"lastSeen": "2024-01-02T03:04:05.678Z", "status": "offline"}

    def test_missing_last_active_uses_run_time(self, mapper):
        user = UserTransformer(mapper, NOW).transform(
            {"_id": "u1", "email": "f@x.com", "team": [{"teamId": "team-k1"}]}
        )
        assert user["presence"]["lastSeen"] == "2024-05-01T12:00:00.000Z"


class TestNormalizeTimestamp:
    def test_iso_string(self):
        assert normalize_timestamp("2024-01-02T03:04:05Z", NOW) == "2024-01-02T03:04:05.000Z"

    def test_epoch_millis(self):
        assert normalize_timestamp(0, NOW) == "1970-01-01T00:00:00.000Z"

    def test_unparseable_string(self):
        with pytest.raises(TransformationError):
            normalize_timestamp("last tuesday", NOW)


class TestPropertyTransformer:
    def test_no_address_is_skipped(self):
        with pytest.raises(SkipRecordError):
            PropertyTransformer().transform({"_id": "p1", "orgId": "org-t1"})

    def test_address_is_flattened(self):
        result = PropertyTransformer().transform(
            {
                "_id": "p1",
                "orgId": "org-t1",
                "address": {"street": "1 Main St", "city": "Springfield", "state": "IL", "zip": "62701"},
            }
        )
        assert result == {"id": "p1", "orgId": "org-t1", "address": "1 Main St, Springfield, IL 62701"}

    def test_non_document_address_is_an_error(self):
        with pytest.raises(TransformationError):
            PropertyTransformer().transform({"_id": "p1", "address": "1 Main St"})


def test_format_address_with_missing_parts():
    assert format_address({"street": "1 Main St"}) == "1 Main St, ,"


def _ref(tag_id, record_id, reference_type):
    return TagReference(tag_id, record_id, reference_type)


class TestClassifyRecordType:
    def test_property_reference_only(self):
        assert classify_record_type([_ref("t", "p", ReferenceType.PROPERTY)]) == "properties"

    def test_contact_references_only(self):
        assert classify_record_type([_ref("t", "c", ReferenceType.CONTACT)]) == "contacts"

    def test_mixed_references(self):
        refs = [_ref("t", "c", ReferenceType.CONTACT), _ref("t", "p", ReferenceType.PROPERTY)]
        assert classify_record_type(refs) == "properties"

    def test_no_references_defaults_to_properties(self):
        assert classify_record_type([]) == "properties"


class TestTagTransformer:
    def test_hot_lead_with_property_reference(self, mapper):
        references = {"tag-1": [_ref("tag-1", "p1", ReferenceType.PROPERTY)]}
        tag = TagTransformer(mapper, references).transform(
            {"_id": "tag-1", "tag": "Hot Lead", "team": "team-k1", "userId": "legacy-user-1"}
        )

        assert tag == {
            "orgId": "org-t1",
            "name": "Hot Lead",
            "recordType": "properties",
            "userIds": [{"userId": "user-target-1", "role": "tag:admin"}],
            "mongoId": "tag-1",
        }

    def test_unknown_creator_uses_fallback(self, mapper):
        tag = TagTransformer(mapper, {}).transform(
            {"_id": "tag-2", "tag": "Cold", "team": "team-k1", "userId": "nobody"}
        )
        assert tag["userIds"] == [{"userId": "user-fallback", "role": "tag:admin"}]
        assert tag["recordType"] == "properties"

    def test_unmapped_org_is_skipped(self, mapper):
        with pytest.raises(SkipRecordError):
            TagTransformer(mapper, {}).transform({"_id": "tag-3", "tag": "X", "team": "elsewhere"})

    def test_missing_label_is_an_error(self, mapper):
        with pytest.raises(TransformationError):
            TagTransformer(mapper, {}).transform({"_id": "tag-4", "team": "team-k1"})


def test_build_reference_index_groups_and_drops_malformed():
    index = build_reference_index(
        [
            {"_id": "r1", "tagObject": "tag-1", "refWith": "p1", "type": "property"},
            {"_id": "r2", "tagObject": "tag-1", "refWith": "c1", "type": "contact"},
            {"_id": "r3", "tagObject": "tag-2", "refWith": "p2", "type": "deal"},
            {"_id": "r4", "refWith": "p3", "type": "property"},
        ]
    )

    assert set(index) == {"tag-1"}
    assert [r.record_id for r in index["tag-1"]] == ["p1", "c1"]
