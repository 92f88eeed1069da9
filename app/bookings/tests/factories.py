"""
Factory Boy factories for booking test data.

Usage:
    from bookings.tests.factories import EventFactory, SlotReservationFactory

    event = EventFactory(owner=expert, duration_minutes=45)
    reservation = SlotReservationFactory(event=event, guest_email="a@b.pt")

    # created_at is auto_now_add; age a row after creating it
    aged = SlotReservationFactory(created_ago=timedelta(hours=72))
"""

import uuid
from datetime import timedelta

import factory
from django.utils.timezone import now

from authentication.tests.factories import UserFactory
from bookings.models import Event, Meeting, PaymentStatus, SlotReservation


class EventFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Event
        skip_postgeneration_save = True

    owner = factory.SubFactory(UserFactory)
    name = factory.Sequence(lambda n: f"Consultation {n}")
    slug = factory.Sequence(lambda n: f"consultation-{n}")
    duration_minutes = 60
    is_active = True


class SlotReservationFactory(factory.django.DjangoModelFactory):
    """
    Factory for SlotReservation.

    Defaults to a reservation for a slot three days out that expires in
    two days. Pass ``created_ago`` to back-date created_at.
    """

    class Meta:
        model = SlotReservation
        skip_postgeneration_save = True

    event = factory.SubFactory(EventFactory)
    expert = factory.LazyAttribute(lambda o: o.event.owner)
    guest_email = factory.Sequence(lambda n: f"guest{n}@example.com")
    guest_name = factory.Faker("name")
    start_time = factory.LazyFunction(
        lambda: (now() + timedelta(days=3)).replace(microsecond=0)
    )
    end_time = factory.LazyAttribute(lambda o: o.start_time + timedelta(hours=1))
    timezone = "Europe/Lisbon"
    expires_at = factory.LazyFunction(lambda: now() + timedelta(days=2))
    stripe_payment_intent_id = factory.LazyFunction(
        lambda: f"pi_test_{uuid.uuid4().hex[:16]}"
    )
    created_ago = None

    @classmethod
    def _create(cls, model_class, *args, **kwargs):
        created_ago = kwargs.pop("created_ago", None)
        instance = super()._create(model_class, *args, **kwargs)
        if created_ago is not None:
            backdated = now() - created_ago
            model_class.objects.filter(pk=instance.pk).update(created_at=backdated)
            instance.created_at = backdated
        return instance


class MeetingFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Meeting
        skip_postgeneration_save = True

    event = factory.SubFactory(EventFactory)
    expert = factory.LazyAttribute(lambda o: o.event.owner)
    guest_email = factory.Sequence(lambda n: f"patient{n}@example.com")
    guest_name = factory.Faker("name")
    start_time = factory.LazyFunction(
        lambda: (now() + timedelta(days=3)).replace(microsecond=0)
    )
    end_time = factory.LazyAttribute(lambda o: o.start_time + timedelta(hours=1))
    stripe_payment_intent_id = factory.LazyFunction(
        lambda: f"pi_test_{uuid.uuid4().hex[:16]}"
    )
    stripe_payment_status = PaymentStatus.SUCCEEDED
