from tuna_adventure import db
from tuna_adventure.models import Admin, GameSetting, Scenario
from tuna_adventure.services.game.settings import DEFAULT_SETTINGS, TIME_LIMIT_KEY

SCENARIOS = [
    {
        'position': 1,
        'title': 'Misty Forest',
        'prompt': (
            "Your group reaches the Misty Forest. It is damp and visibility is poor. You find an old sign "
            "that reads: 'The fastest path follows the whisper of the wind'. When everyone falls silent you "
            "hear leaves rustling from three different directions. What do you do?"
        ),
        'reference_answer': (
            "Stop and do not move yet. Send one or two people on short explorations, no longer than five "
            "minutes, toward each source of sound to gather more information. Keep in voice contact."
        ),
        'reference_rationale': (
            "The situation is highly ambiguous. The whisper of the wind is vague and subjective information. "
            "Deciding on minimal data is risky, so reduce ambiguity with small explorations before committing "
            "to a path. This is sense-making: understand the situation before acting."
        ),
    },
    {
        'position': 2,
        'title': 'Raging River',
        'prompt': (
            "Past the forest you reach a river that your old map shows as calm. Rain upstream has turned it "
            "into a dangerous torrent and the only bridge has been washed away. Your crossing plan has failed "
            "completely. What do you do?"
        ),
        'reference_answer': (
            "Move away from the riverbank to stay safe. Reassess the situation and look for alternatives: walk "
            "upstream or downstream to find a safer crossing or another bridge, or camp in a safe place and "
            "wait for the current to calm down."
        ),
        'reference_rationale': (
            "This is turbulence: conditions changed quickly and drastically. Safety comes first, then "
            "stabilize. Forcing a crossing is reckless. Agility means adapting the plan to new conditions "
            "instead of clinging to the original one."
        ),
    },
    {
        'position': 3,
        'title': 'Broken Compass',
        'prompt': (
            "On the open plateau your compass starts spinning and the two navigators disagree about which way "
            "is north. Clouds hide the sun and the next landmark is a day away. What do you do?"
        ),
        'reference_answer': (
            "Stop and combine several independent sources: the slope of the terrain, moss and tree growth, "
            "the map contours and the last known position. Agree on a direction together, mark the trail as "
            "you walk, and set a checkpoint to verify the heading."
        ),
        'reference_rationale': (
            "Uncertainty about a single instrument is handled by triangulating information instead of trusting "
            "one source or one person. Marking the trail and setting checkpoints keeps the decision reversible."
        ),
    },
    {
        'position': 4,
        'title': 'Crossroads Village',
        'prompt': (
            "You arrive at a village where every villager gives different advice about the mountain pass. "
            "Some say it is closed, others say it is the only safe route. Supplies are running low. What do "
            "you do?"
        ),
        'reference_answer': (
            "Listen to several villagers, ask what each one has actually seen and when, and look for a "
            "trusted local guide. Restock supplies while gathering information and prepare a fallback route "
            "before choosing the pass."
        ),
        'reference_rationale': (
            "Complexity means many interacting factors and conflicting opinions. Separate first-hand facts from "
            "rumor, use local expertise, and keep options open with a contingency plan."
        ),
    },
    {
        'position': 5,
        'title': 'Collapsed Cave',
        'prompt': (
            "While sheltering from a storm in a cave, part of the entrance collapses. One teammate is slightly "
            "injured and the group is scared. There is a faint draft coming from deeper in the cave. What do "
            "you do?"
        ),
        'reference_answer': (
            "Calm the group and give first aid to the injured teammate. Assign clear roles: one person checks "
            "whether the rubble can be cleared safely, another explores the draft a short distance with a "
            "light and a rope. Ration light and water."
        ),
        'reference_rationale': (
            "In a crisis the leader restores calm and clarity first. Clear roles and parallel small actions "
            "keep the team moving while protecting people and scarce resources."
        ),
    },
    {
        'position': 6,
        'title': 'Shifting Dunes',
        'prompt': (
            "The desert path marked on your map has disappeared under moving dunes. The wind changes every "
            "hour and yesterday's tracks are gone. The oasis should be somewhere ahead. What do you do?"
        ),
        'reference_answer': (
            "Travel in the cooler hours, navigate by stars and fixed landmarks instead of the old path, move "
            "in short stages with regular checks, and keep the team close together while conserving water."
        ),
        'reference_rationale': (
            "When the environment keeps changing, plans must be short-cycle and frequently reviewed. Rely on "
            "stable references and iterate instead of following an outdated plan."
        ),
    },
    {
        'position': 7,
        'title': 'Summit Storm',
        'prompt': (
            "The summit and its treasure are one hour away, but a storm is rolling in and some teammates are "
            "exhausted. Half the team wants to push on, the other half wants to turn back. What do you do?"
        ),
        'reference_answer': (
            "Hold a short team discussion, check everyone's condition and the weather signs, and agree on a "
            "turnaround time. If the storm arrives or anyone cannot continue safely, descend together and "
            "try again when conditions improve."
        ),
        'reference_rationale': (
            "Good leadership balances ambition with safety and keeps the team united. A shared decision rule, "
            "such as a turnaround time, prevents pressure and ego from driving a dangerous choice."
        ),
    },
]


def seed_scenarios() -> int:
    """Insert the reference scenarios, refreshing text on existing positions."""
    for data in SCENARIOS:
        scenario = Scenario.query.filter_by(position=data['position']).first()
        if scenario is None:
            scenario = Scenario(position=data['position'])
        scenario.title = data['title']
        scenario.prompt = data['prompt']
        scenario.reference_answer = data['reference_answer']
        scenario.reference_rationale = data['reference_rationale']
        scenario.max_score = 15
        db.session.add(scenario)
    db.session.commit()
    return len(SCENARIOS)


def seed_settings(config) -> None:
    if db.session.get(GameSetting, TIME_LIMIT_KEY) is None:
        db.session.add(GameSetting(
            key=TIME_LIMIT_KEY,
            value=str(config.get('ANSWER_TIME_LIMIT_SEC', 900)),
            description=DEFAULT_SETTINGS[TIME_LIMIT_KEY],
            updated_by='system',
        ))
    db.session.commit()


def seed_admin(config) -> Admin:
    username = config.get('ADMIN_USERNAME', 'admin')
    admin = Admin.query.filter_by(username=username).first()
    if admin is None:
        admin = Admin(username=username)
    admin.set_password(config.get('ADMIN_PASSWORD', 'admin123'))
    db.session.add(admin)
    db.session.commit()
    return admin


def seed_all(config) -> None:
    seed_scenarios()
    seed_settings(config)
    seed_admin(config)
