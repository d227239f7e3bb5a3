"""
Tests for the inventory data models.
"""

import pytest

from models.inventory import (
    ANONYMOUS,
    CredentialCandidate,
    DiscoveredDevice,
    StreamResult,
    SweepSummary,
    TrialOutcome,
    TrialState,
)


class TestStreamResult:
    """Tests for the output line format"""

    def test_full_line(self):
        result = StreamResult("mainStream", "rtsp://10.0.0.5/Streaming/101", (1920, 1080), 25)

        assert result.to_line() == "mainStream\trtsp://10.0.0.5/Streaming/101\t1920x1080\t25"

    def test_without_frame_rate(self):
        result = StreamResult("sub", "rtsp://h/2", (640, 480), None)

        assert result.to_line() == "sub\trtsp://h/2\t640x480"

    def test_without_video_encoder(self):
        assert StreamResult("audio", "rtsp://h/3").to_line() == "audio\trtsp://h/3"

    def test_zero_frame_rate_is_printed(self):
        assert StreamResult("x", "rtsp://h/4", (1, 1), 0).to_line().endswith("\t0")


class TestCredentialCandidate:
    """Tests for credential pairs"""

    def test_password_hidden_from_repr(self):
        assert "hunter2" not in repr(CredentialCandidate("admin", "hunter2"))

    def test_describe_masks_password(self):
        assert CredentialCandidate("admin", "hunter2").describe() == "admin:h******"
        assert CredentialCandidate("admin", "ab").describe() == "admin:**"

    def test_anonymous(self):
        assert ANONYMOUS.is_anonymous
        assert ANONYMOUS.describe() == "<anonymous>"

    @pytest.mark.parametrize("username,password", [("admin", None), (None, "x")])
    def test_half_pair_rejected(self, username, password):
        with pytest.raises(ValueError):
            CredentialCandidate(username, password)

    def test_empty_password_is_a_pair(self):
        assert not CredentialCandidate("admin", "").is_anonymous


class TestOutcomes:
    """Tests for trial outcomes and the sweep summary"""

    def test_label_for_unnamed_device(self):
        assert DiscoveredDevice("http://10.0.0.1").label == "<unnamed>"

    def test_summary_counts(self):
        device = DiscoveredDevice("http://10.0.0.1", "Cam")
        summary = SweepSummary(dispatched=2)
        summary.record(TrialOutcome(
            device=device,
            state=TrialState.SUCCEEDED,
            results=[StreamResult("a", "rtsp://x/a"), StreamResult("b", "rtsp://x/b")],
        ))
        summary.record(TrialOutcome(device=device, state=TrialState.EXHAUSTED))

        assert summary.to_dict() == {"dispatched": 2, "succeeded": 1, "exhausted": 1, "streams": 2}

    def test_outcome_dict_masks_credentials(self):
        outcome = TrialOutcome(
            device=DiscoveredDevice("http://10.0.0.1", "Cam"),
            state=TrialState.SUCCEEDED,
            credentials=CredentialCandidate("admin", "hunter2"),
            attempts=1,
        )

        data = outcome.to_dict()

        assert data["state"] == "succeeded"
        assert "hunter2" not in str(data)
