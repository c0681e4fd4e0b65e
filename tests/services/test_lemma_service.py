from kindle_vocab.services import LemmaService


def test_missing_model_degrades_to_none():
    service = LemmaService(model_name="xx_model_that_does_not_exist")

    assert service.lemmatize("running") is None
    assert service._unavailable is True


def test_blank_input_is_not_looked_up():
    service = LemmaService(model_name="xx_model_that_does_not_exist")

    assert service.lemmatize("") is None
    assert service.lemmatize("   ") is None
    # Model loading is lazy and was never attempted.
    assert service._nlp is None
    assert service._unavailable is False
