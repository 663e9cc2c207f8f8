def classify(status_code: int, body: str) -> str:
    """
    Classifies the response of the flag checking service for a single flag.
    Set `classifier.module: classifier` in submitter.yaml to use this function.

    :param status_code: HTTP status code of the response.
    :type status_code: int
    :param body: Body of the response.
    :type body: str
    :return: "accepted" if the flag was accepted, "rejected" if the flag is invalid,
    old or already submitted, or "undetermined" to retry it in the next cycle.
    :rtype: str
    """

    # Replace this code with your own.

    if status_code != 200:
        return "undetermined"
    if body.endswith("OK"):
        return "accepted"
    if "ERR" in body:
        return "undetermined"
    return "rejected"
