from speech_runner.domain.patterns import (
    EntityMatchMode,
    PatternMatchingEntity,
    PatternMatchingIntent,
    PatternMatchingModel,
)

ELEVATOR_MODEL_ID = "ElevatorModel"


def elevator_model() -> PatternMatchingModel:
    """Floor and door commands for an elevator, no remote model required."""
    model = PatternMatchingModel(ELEVATOR_MODEL_ID)

    # "[Go | Take me]" matches "Go", "Take me" or nothing.
    pattern_with_optional_words = "[Go | Take me] to [floor|level] {floorName}"
    pattern_with_optional_entity = "Go to parking [{parkingLevel}]"
    # floorName:1 and floorName:2 share the floorName phrase list.
    pattern_with_two_of_the_same_entity = "Go to floor {floorName:1} [and then go to floor {floorName:2}]"

    model.intents.append(
        PatternMatchingIntent(
            "ChangeFloors",
            pattern_with_optional_words,
            pattern_with_optional_entity,
            pattern_with_two_of_the_same_entity,
        )
    )
    model.intents.append(
        PatternMatchingIntent(
            "DoorControl",
            "{action} the doors",
            "{action} doors",
            "{action} the door",
            "{action} door",
        )
    )

    # "action" is not declared, so it captures any text.
    model.entities.append(
        PatternMatchingEntity.create_list_entity(
            "floorName",
            EntityMatchMode.STRICT,
            "ground floor", "lobby", "1st", "first", "one", "1", "2nd", "second", "two", "2",
        )
    )
    model.entities.append(PatternMatchingEntity.create_integer_entity("parkingLevel"))
    return model
