import csv
import io
from datetime import date, datetime, timezone

from stageready_admin.export import (
    export_filename,
    iso_timestamp,
    speeches_csv,
    users_csv,
)
from stageready_admin.records import Speech, SpeechScores, User

TRICKY = 'He said "stop, now", then left.\nNext line'


def _speech(**kwargs):
    defaults = dict(
        id="s1",
        user_id="u1",
        user_name="Ann Lee",
        transcript="hello",
        speech_type="interview",
        scores=SpeechScores(
            speech_pace=3.456, pausing_fluency=2, loudness_control=1.5,
            pitch_variation=4, articulation_clarity=3.333, expressive_emphasis=0,
            filler_words=1.005, overall=3.1,
        ),
        duration=59.5,
        word_count=142,
        average_pace=121.6,
        created_at=datetime(2025, 2, 3, 4, 5, 6, 789000, tzinfo=timezone.utc),
    )
    defaults.update(kwargs)
    return Speech(**defaults)


def _parse(text):
    return list(csv.reader(io.StringIO(text)))


def test_transcript_round_trips_through_a_csv_reader():
    text = speeches_csv([_speech(transcript=TRICKY)])
    rows = _parse(text)
    assert rows[1][-1] == TRICKY
    assert len(rows) == 2


def test_every_data_field_is_quoted_and_quotes_doubled():
    text = speeches_csv([_speech(transcript='say "hi"')], include_user=False)
    data_line = text.split("\n")[1]
    assert data_line.startswith('"interview","3.10",')
    assert data_line.endswith('"say ""hi"""')


def test_speech_columns_and_formatting():
    rows = _parse(speeches_csv([_speech()]))
    assert rows[0] == [
        "User", "Type", "Overall", "Pace", "Clarity", "Pitch", "Fluency", "Loudness",
        "Emphasis", "Filler Words", "Duration (s)", "Words", "WPM", "Date", "Transcript",
    ]
    assert rows[1] == [
        "Ann Lee", "interview", "3.10", "3.46", "3.33", "4.00", "2.00", "1.50",
        "0.00", "1.00", "60", "142", "122", "2025-02-03T04:05:06.789Z", "hello",
    ]


def test_single_user_export_drops_user_column():
    rows = _parse(speeches_csv([_speech()], include_user=False))
    assert rows[0][0] == "Type"
    assert len(rows[1]) == 14


def test_user_column_falls_back_to_user_id():
    rows = _parse(speeches_csv([_speech(user_name=None)]))
    assert rows[1][0] == "u1"


def test_header_row_is_unquoted():
    text = users_csv([])
    assert text == "Name,Email,Role,Gender,Age,Phone,Bio,Joined"


def test_users_export():
    users = [
        User(uid="1", email="ann@x.io", first_name="Ann", last_name="Lee", gender="female",
             age=31, phone_number="+1 555", bio='Likes "debate", chess',
             created_at=datetime(2024, 1, 2, tzinfo=timezone.utc)),
        User(uid="2", role="admin"),
    ]
    rows = _parse(users_csv(users))
    assert rows[1] == ["Ann Lee", "ann@x.io", "user", "female", "31", "+1 555",
                       'Likes "debate", chess', "2024-01-02T00:00:00.000Z"]
    assert rows[2] == ["Unknown User", "", "admin", "", "", "", "", ""]


def test_iso_timestamp_normalizes_to_utc():
    naive = datetime(2025, 1, 1, 12, 0)
    assert iso_timestamp(naive) == "2025-01-01T12:00:00.000Z"


def test_export_filenames():
    today = date(2025, 3, 9)
    assert export_filename("users", today=today) == "stageready-users-2025-03-09.csv"
    assert export_filename("speeches", today=today) == "stageready-speeches-2025-03-09.csv"
    assert export_filename("speeches", owner="Ann O'Lee", today=today) == "speeches-ann-o-lee-2025-03-09.csv"
