from typing import Any, Callable

PLACEHOLDER = 'Search tracks (Jamendo, SoundCloud, Audiomack, Internet Archive)'
SUBMIT_KEY = 'Enter'


class SearchBar:
    """Text input plus search button.

    Enter or the button hands the current text, even an empty one, to
    ``on_search``. Deciding whether the text is long enough is the caller's job.
    """

    def __init__(self, on_search: Callable[[str], Any], value: str = ''):
        self.on_search = on_search
        self.value = value

    def change(self, text: str) -> None:
        self.value = text

    def key_press(self, key: str) -> Any:
        if key == SUBMIT_KEY:
            return self.on_search(self.value)
        return None

    def click(self) -> Any:
        return self.on_search(self.value)
