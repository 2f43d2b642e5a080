from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import sessionmaker

from luckydraw.db.engine import make_engine
from luckydraw.models import Base
from luckydraw.prize_draw import (
    DrawSnapshot,
    Participant,
    PrizeQueue,
    PrizeTier,
    WinnerEntry,
)
from luckydraw.store import SqlSnapshotStore, snapshot_key_from_env


def main() -> None:
    """Seed the development database with a half-finished sample draw."""
    engine = make_engine()

    # Drop and recreate all tables so the seed always starts clean.
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, expire_on_commit=False)

    now = datetime.now(timezone.utc)

    # Participants
    participants = [
        Participant(id=f"EMP{n:03d}", name=name)
        for n, name in enumerate(
            [
                "Alice Nguyen",
                "Bob Tran",
                "Carol Le",
                "Dao Pham",
                "Emi Sato",
                "Farid Khan",
                "Grace Ho",
                "Hiro Tanaka",
            ],
            start=1,
        )
    ]

    # Prize tiers
    tiers = [
        PrizeTier(id=1, name="Grand Prize", quantity=1, localized_name="Giai Dac Biet"),
        PrizeTier(id=2, name="First Prize", quantity=2, localized_name="Giai Nhat"),
        PrizeTier(id=3, name="Consolation", quantity=3, localized_name="Giai Khuyen Khich"),
    ]
    queue = PrizeQueue.build(tiers)

    # Two consolation prizes already awarded
    winners = [
        WinnerEntry(
            participant=participants[index],
            prize=queue[index],
            timestamp=now - timedelta(minutes=5 - index),
        )
        for index in range(2)
    ]

    snapshot = DrawSnapshot(
        participants=participants[2:],
        prize_tiers=tiers,
        cursor=len(winners),
        winners=winners,
        original_participants=participants,
        saved_at=now,
    )

    key = snapshot_key_from_env()
    store = SqlSnapshotStore(Session, key=key)
    if not store.save(snapshot):
        raise SystemExit("Failed to seed sample draw")

    print(f"Seeded draw {key!r}.")


if __name__ == "__main__":
    main()
