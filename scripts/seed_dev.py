import logging

from santadraw.db.engine import get_sessionmaker, make_engine
from santadraw.models import Base
from santadraw.notify import LoggingNotificationSink
from santadraw.session import ExchangeSession
from santadraw.store.sql import SqlGroupStore


def main() -> None:
    """Seed the development database with a locked demo exchange and one draw."""
    logging.basicConfig(level=logging.INFO)
    engine = make_engine()

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    store = SqlGroupStore(get_sessionmaker(engine))

    organiser = ExchangeSession(store, LoggingNotificationSink())
    organiser.organiser_email = "organiser@example.com"
    for name in ("Alice", "Bob", "Carol", "Dave"):
        organiser.add_participant(name)
    print(organiser.save().message)
    print(organiser.generate_link().message)
    print("Group link:", organiser.link_url)

    participant = ExchangeSession(store, LoggingNotificationSink(), slug=organiser.slug)
    participant.load()
    print(participant.draw("Alice", "alice@example.com").message)


if __name__ == "__main__":
    main()
