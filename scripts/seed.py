#!/usr/bin/env python3
"""Seed the database with a demo agency, its staff and a property, and print dev tokens."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from leadengine.database import Base, SessionLocal, engine
from leadengine.middleware.auth import create_access_token
from leadengine.models import Agency, Agent, Property
from leadengine.schemas.enums import Role
from leadengine.services.guard import Principal

DEMO_AGENTS = [
    ("agency_admin", "Asha", "Rao", "admin@demo-realty.example", None),
    ("agent", "Vikram", "Shah", "vikram@demo-realty.example", ["Whitefield", "Marathahalli"]),
    ("agent", "Meera", "Iyer", "meera@demo-realty.example", ["Indiranagar", "Koramangala"]),
    ("agent", "Rohan", "Das", "rohan@demo-realty.example", ["Hebbal"]),
]


def seed():
    Base.metadata.create_all(engine)
    session = SessionLocal()

    existing = session.query(Agency).filter_by(slug="demo-realty").first()
    if existing:
        print(f"Demo agency already exists: {existing.id}")
        session.close()
        return

    agency = Agency(
        name="Demo Realty",
        slug="demo-realty",
        contact_email="hello@demo-realty.example",
        auto_assign_leads=True,
        assignment_method="smart",
    )
    session.add(agency)
    session.flush()

    agents = []
    for role, first, last, email, locations in DEMO_AGENTS:
        agent = Agent(
            agency_id=agency.id, role=role, first_name=first, last_name=last,
            email=email, locations=locations, team="north" if role == "agent" else None,
        )
        session.add(agent)
        session.flush()
        agents.append(agent)

    prop = Property(
        agency_id=agency.id,
        title="Lakeview Residences",
        agent_id=agents[1].id,
        assigned_agent_ids=[agents[1].id, agents[2].id],
    )
    session.add(prop)
    session.commit()

    print(f"Created demo agency: {agency.id} (slug: {agency.slug})")
    print(f"Created property: {prop.id}")
    for agent in agents:
        token = create_access_token(Principal(
            user_id=agent.id, role=Role(agent.role), agency_id=agency.id, team=agent.team,
        ))
        print(f"{agent.role:<13} {agent.email:<30} {token}")
    session.close()


if __name__ == "__main__":
    seed()
