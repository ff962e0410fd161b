from faker import Faker

from tests.schemas import UserCredentials


def generate_user_credentials() -> UserCredentials:
    """
    Generate random signup credentials that satisfy the username and password rules
    Returns:
        UserCredentials: Generated username, password and email
    """
    faker = Faker()
    username = faker.user_name().replace(".", "_") + str(faker.random_int(10, 99))
    password = (
        faker.password(
            length=12, special_chars=False, digits=True, upper_case=True, lower_case=True
        )
        + "@%&"
    )
    email = faker.safe_email()
    return UserCredentials(username=username, password=password, email=email)
