"""Tests for the points ledger."""

from scoring.ledger import PointsLedger

SCORING_WRITES = ("insert_points_records", "update_points_record", "update_league_user")


def _scoring_writes(storage):
    return [w for w in storage.writes if w in SCORING_WRITES]


def _two_users(storage):
    storage.add_user(1, 7)
    storage.add_player(1, 7, "p1", "mid", 6, starred=True)
    storage.add_player(1, 7, "p2", "att", 3)
    storage.add_user(1, 8)
    storage.add_player(1, 8, "p3", "def", 4)


def _season_sum(storage, league_id, user_id, field):
    return sum(
        r[field] for r in storage.points
        if r["league_id"] == league_id and r["user_id"] == user_id
    )


class TestScoringPass:
    """Tests for live scoring passes."""

    def test_first_pass_creates_live_record(self, storage, league):
        """Test a user without a live row gets one and the totals follow it."""
        _two_users(storage)

        summary = PointsLedger(storage).run_scoring_pass(1)

        assert summary.users_scored == 2
        assert summary.users_changed == 2
        record = storage.record(1, 7, 1)
        assert record["fantasy_points"] == 12
        assert record["points"] == 12
        assert record["time"] is None
        assert storage.user(1, 7)["points"] == 12
        assert storage.user(1, 8)["fantasy_points"] == 4

    def test_repeated_pass_writes_nothing(self, storage, league):
        """Test a second pass over unchanged data is a no-op."""
        _two_users(storage)
        ledger = PointsLedger(storage)

        ledger.run_scoring_pass(1)
        storage.writes.clear()
        summary = ledger.run_scoring_pass("Bundesliga")

        assert _scoring_writes(storage) == []
        assert summary.users_scored == 2
        assert summary.users_changed == 0

    def test_skipped_while_transfer_open(self, storage, league):
        """Test nothing is scored during the transfer window."""
        _two_users(storage)
        storage.set_window("Bundesliga", transfer_open=True)

        summary = PointsLedger(storage).run_scoring_pass(1)

        assert summary.skipped_reason == "transfer_open"
        assert storage.writes == []

    def test_skipped_before_first_refresh(self, storage):
        """Test a league type without stored window state is treated as open."""
        storage.add_league(1)
        storage.add_user(1, 7)

        summary = PointsLedger(storage).run_scoring_pass("Bundesliga")

        assert summary.skipped_reason == "transfer_open"

    def test_unknown_league_id(self, storage, league):
        """Test a league id without settings scores nothing."""
        summary = PointsLedger(storage).run_scoring_pass(99)
        assert summary.leagues_scored == 0
        assert storage.writes == []

    def test_archived_league_not_scored(self, storage):
        """Test archived leagues are left alone."""
        storage.add_league(1, archived=True)
        storage.set_window("Bundesliga", transfer_open=False)
        storage.add_user(1, 7)

        summary = PointsLedger(storage).run_scoring_pass(1)

        assert summary.leagues_scored == 0

    def test_type_pass_only_scores_running_leagues(self, storage, league):
        """Test a league type pass skips leagues without a live row."""
        storage.add_league(2)
        _two_users(storage)
        storage.add_user(2, 9)
        storage.add_player(2, 9, "p1", "mid", 6, league="Bundesliga")
        ledger = PointsLedger(storage)
        ledger.run_scoring_pass(1)

        summary = ledger.run_scoring_pass("Bundesliga")

        assert summary.leagues_scored == 1
        assert storage.record(2, 9, 1) is None

    def test_diff_rule_matches_resum(self, storage, league):
        """Test season totals equal the sum of snapshots as live points move."""
        storage.add_user(1, 7, points=20, fantasy_points=20)
        storage.points.append({"league_id": 1, "user_id": 7, "matchday": 1, "fantasy_points": 20,
                               "prediction_points": 0, "points": 20, "time": 500})
        storage.add_player(1, 7, "p1", "mid", 6)
        ledger = PointsLedger(storage)
        ledger.start_matchday("Bundesliga")

        for score in (6, 11, -2, 11):
            storage.players[0]["last_match"] = score
            ledger.run_scoring_pass("Bundesliga")
            user = storage.user(1, 7)
            assert user["fantasy_points"] == _season_sum(storage, 1, 7, "fantasy_points")
            assert user["points"] == user["fantasy_points"] + user["prediction_points"]

        assert storage.record(1, 7, 2)["fantasy_points"] == 11
        assert storage.user(1, 7)["points"] == 31

    def test_prediction_points_tracked_separately(self, storage, league):
        """Test a prediction change only moves the prediction total."""
        storage.add_user(1, 7)
        storage.add_player(1, 7, "p1", "mid", 5)
        storage.predictions.append({"league_id": 1, "user_id": 7, "club": "A", "home": 1, "away": 0})
        storage.clubs.append({"club": "A", "league": "Bundesliga", "home": True,
                              "team_score": 0, "opponent_score": 0})
        ledger = PointsLedger(storage)
        ledger.run_scoring_pass(1)
        assert storage.user(1, 7)["prediction_points"] == 0

        storage.clubs[0]["team_score"] = 1
        ledger.run_scoring_pass(1)

        assert storage.record(1, 7, 1)["prediction_points"] == 15
        assert storage.user(1, 7)["fantasy_points"] == 5
        assert storage.user(1, 7)["points"] == 20

    def test_top11_applied_before_scoring(self, storage):
        """Test leagues with top-11 bench the weakest players first."""
        storage.add_league(1, top11=True)
        storage.set_window("Bundesliga", transfer_open=False)
        storage.add_user(1, 7, formation=[0, 0, 0, 1])
        storage.add_player(1, 7, "a0", "att", 8)
        storage.add_player(1, 7, "a1", "att", 2)

        PointsLedger(storage).run_scoring_pass(1)

        assert storage.roles(1, 7) == {"a0": "att", "a1": "bench"}
        assert storage.user(1, 7)["fantasy_points"] == 8

    def test_finalized_record_not_overwritten(self, storage, league):
        """Test a finalized latest matchday is never rescored by a live pass."""
        storage.add_user(1, 7)
        storage.add_player(1, 7, "p1", "mid", 5)
        storage.points.append({"league_id": 1, "user_id": 7, "matchday": 1, "fantasy_points": 1,
                               "prediction_points": 0, "points": 1, "time": 500})

        summary = PointsLedger(storage).run_scoring_pass(1)

        assert summary.users_changed == 0
        assert storage.record(1, 7, 1)["fantasy_points"] == 1


class TestMatchdayLifecycle:
    """Tests for starting, finalizing and rescoring matchdays."""

    def test_start_matchday(self, storage, league):
        """Test every user gets a zero live row for the next matchday."""
        _two_users(storage)
        storage.points.append({"league_id": 1, "user_id": 7, "matchday": 3, "fantasy_points": 1,
                               "prediction_points": 0, "points": 1, "time": 500})
        ledger = PointsLedger(storage)

        assert ledger.start_matchday("Bundesliga") == 1
        assert storage.record(1, 7, 4)["points"] == 0
        assert storage.record(1, 8, 4)["time"] is None

        # Already running
        assert ledger.start_matchday("Bundesliga") == 0
        assert len(storage.points) == 3

    def test_finalize_matchday(self, storage, league):
        """Test finalizing scores once more and archives the matchday."""
        _two_users(storage)
        storage.predictions.append({"league_id": 1, "user_id": 7, "club": "A", "home": 1, "away": 0})
        ledger = PointsLedger(storage)
        ledger.start_matchday("Bundesliga")
        storage.players[1]["last_match"] = 10

        assert ledger.finalize_matchday("Bundesliga", 1000) == 1

        record = storage.record(1, 7, 1)
        assert record["time"] == 1000
        assert record["fantasy_points"] == 19
        assert not storage.has_live_points(1)
        assert storage.predictions == []
        assert len(storage.historical_predictions) == 1
        assert {p["time"] for p in storage.historical_players} == {1000}
        assert len(storage.historical_squad) == 3

    def test_finalize_without_live_matchday(self, storage, league):
        """Test finalizing with nothing running does nothing."""
        _two_users(storage)
        assert PointsLedger(storage).finalize_matchday("Bundesliga", 1000) == 0
        assert storage.writes == []

    def test_rescore_matchday(self, storage, league):
        """Test a corrected archived result moves the totals by the difference."""
        _two_users(storage)
        ledger = PointsLedger(storage)
        ledger.start_matchday("Bundesliga")
        ledger.finalize_matchday("Bundesliga", 1000)
        assert storage.user(1, 8)["points"] == 4

        archived = next(p for p in storage.historical_players if p["uid"] == "p3")
        archived["last_match"] = 9

        assert ledger.rescore_matchday(1, 1) == 1
        assert storage.record(1, 8, 1)["fantasy_points"] == 9
        assert storage.record(1, 8, 1)["time"] == 1000
        assert storage.user(1, 8)["points"] == 9
        assert storage.user(1, 7)["points"] == 12

    def test_rescore_counts_missing_prediction_goals_as_zero(self, storage, league):
        """Test archived predictions without goals are scored as 0."""
        storage.add_user(1, 7)
        storage.points.append({"league_id": 1, "user_id": 7, "matchday": 1, "fantasy_points": 0,
                               "prediction_points": 0, "points": 0, "time": 1000})
        storage.historical_predictions.append({"league_id": 1, "user_id": 7, "matchday": 1,
                                               "club": "A", "home": None, "away": 0})
        storage.historical_clubs.append({"club": "A", "league": "Bundesliga", "home": True,
                                         "team_score": 0, "opponent_score": 0, "time": 1000})

        PointsLedger(storage).rescore_matchday(1, 1)

        assert storage.record(1, 7, 1)["prediction_points"] == 15
        assert storage.user(1, 7)["prediction_points"] == 15
