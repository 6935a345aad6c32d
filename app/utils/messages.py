"""
User-facing texts of the bot, keyed by locale.

Every string the bot sends is looked up here so control flow never branches
on language. Placeholders use ``str.format`` syntax.
"""
from typing import List, Optional

DEFAULT_LOCALE = "ru"

# Telegram rejects longer sendMessage texts
MAX_MESSAGE_LENGTH = 4096

MESSAGES = {
    "ru": {
        "welcome": (
            "Привет, {name}! Добро пожаловать в AI Анализатор Здоровья.\n\n"
            "Я могу проанализировать ваши медицинские анализы и предоставить персональные рекомендации.\n\n"
            "Чтобы начать, просто отправьте мне текст, фото или документ с результатами ваших анализов."
        ),
        "help": (
            "Добро пожаловать в AI Анализатор Здоровья!\n\n"
            "Доступные команды:\n"
            "/start - начать работу с ботом\n"
            "/help - показать это справочное сообщение\n"
            "/history - посмотреть историю ваших анализов\n\n"
            "Просто отправьте мне текст, фото или изображение ваших медицинских результатов, "
            "и я предоставлю подробный анализ и рекомендации."
        ),
        "cmd_start": "Начать работу с ботом",
        "cmd_help": "Показать справку",
        "cmd_history": "История ваших анализов",
        "db_error": "Извините, ошибка базы данных. Пожалуйста, попробуйте позже.",
        "history_loading": "Получаю историю ваших анализов, пожалуйста, подождите...",
        "history_error": "Извините, не удалось получить вашу историю.",
        "history_empty": "У вас пока нет истории анализов.",
        "history_header": "Вот ваши последние {count} анализов:",
        "history_text": "Текст: \"{preview}...\"",
        "history_file": "Анализ из файла.",
        "history_recommendation": "Рекомендация",
        "history_no_recommendation": "Рекомендации не найдены.",
        "file_too_large": "Извините, файл слишком большой. Максимальный размер файла {limit_mb}MB.",
        "text_too_long": (
            "Извините, ваше сообщение слишком длинное. Максимальная длина {limit} символов. "
            "Пожалуйста, сократите сообщение."
        ),
        "text_received": "Я получил ваше сообщение. Анализирую данные, пожалуйста, подождите...",
        "photo_received": "Фото получено. Обрабатываю, пожалуйста, подождите...",
        "document_received": "Изображение получено. Обрабатываю, пожалуйста, подождите...",
        "download_error": "Извините, произошла ошибка при получении файла от Telegram. Попробуйте ещё раз.",
        "upload_error": "Извините, произошла ошибка при загрузке файла. Попробуйте позже.",
        "processing_error": "Извините, что-то пошло не так при обработке вашего запроса.",
        "unsupported_document": (
            "Спасибо за документ. В настоящее время я могу анализировать только изображения и обычный текст. "
            "Поддержка PDF и других форматов появится позже! Пожалуйста, отправьте результаты в виде фото "
            "или скопируйте текст в сообщение."
        ),
        "default_image_prompt": "Проанализируй приложенные результаты медицинских тестов.",
        "analysis_not_configured": "Ключ OpenAI API не настроен. Пожалуйста, обратитесь к администратору.",
        "analysis_text_failed": "Извините, произошла ошибка при анализе данных. Пожалуйста, попробуйте позже.",
        "analysis_image_failed": "Извините, произошла ошибка при анализе изображения. Пожалуйста, попробуйте позже.",
    },
    "en": {
        "welcome": (
            "Hi, {name}! Welcome to the AI Health Analyzer.\n\n"
            "I can analyze your medical test results and give you personal recommendations.\n\n"
            "To get started, just send me text, a photo or a document with your test results."
        ),
        "help": (
            "Welcome to the AI Health Analyzer!\n\n"
            "Available commands:\n"
            "/start - start using the bot\n"
            "/help - show this help message\n"
            "/history - view your analysis history\n\n"
            "Just send me text, a photo or an image of your medical results "
            "and I will provide a detailed analysis and recommendations."
        ),
        "cmd_start": "Start using the bot",
        "cmd_help": "Show help",
        "cmd_history": "Your analysis history",
        "db_error": "Sorry, a database error occurred. Please try again later.",
        "history_loading": "Fetching your analysis history, please wait...",
        "history_error": "Sorry, your history could not be retrieved.",
        "history_empty": "You have no analysis history yet.",
        "history_header": "Here are your last {count} analyses:",
        "history_text": "Text: \"{preview}...\"",
        "history_file": "Analysis from a file.",
        "history_recommendation": "Recommendation",
        "history_no_recommendation": "No recommendations found.",
        "file_too_large": "Sorry, the file is too large. The maximum file size is {limit_mb}MB.",
        "text_too_long": (
            "Sorry, your message is too long. The maximum length is {limit} characters. "
            "Please shorten your message."
        ),
        "text_received": "I got your message. Analyzing the data, please wait...",
        "photo_received": "Photo received. Processing, please wait...",
        "document_received": "Image received. Processing, please wait...",
        "download_error": "Sorry, there was an error fetching the file from Telegram. Please try again.",
        "upload_error": "Sorry, there was an error uploading the file. Please try again later.",
        "processing_error": "Sorry, something went wrong while processing your request.",
        "unsupported_document": (
            "Thanks for the document. Right now I can only analyze images and plain text. "
            "PDF and other formats are coming later! Please send your results as a photo "
            "or paste the text into a message."
        ),
        "default_image_prompt": "Analyze the attached medical test results.",
        "analysis_not_configured": "OpenAI API key is not configured. Please contact the administrator.",
        "analysis_text_failed": "Sorry, I encountered an error while analyzing the data. Please try again later.",
        "analysis_image_failed": "Sorry, I encountered an error while analyzing the image. Please try again later.",
    },
}

def resolve_locale(language_code: Optional[str], default: str = DEFAULT_LOCALE) -> str:
    """Map a Telegram language code such as ``en-US`` onto a supported locale."""
    if language_code:
        short = language_code.split("-")[0].lower()
        if short in MESSAGES:
            return short
    return default if default in MESSAGES else DEFAULT_LOCALE

def get_message(key: str, locale: Optional[str] = None, **kwargs) -> str:
    catalog = MESSAGES.get(locale or DEFAULT_LOCALE, MESSAGES[DEFAULT_LOCALE])
    template = catalog.get(key) or MESSAGES[DEFAULT_LOCALE][key]
    return template.format(**kwargs) if kwargs else template

def split_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> List[str]:
    """
    Split ``text`` into Telegram-sized chunks whose concatenation is ``text``.

    Cuts prefer a paragraph break, then a line break, then a space, and fall
    back to a hard cut at ``limit`` characters.
    """
    chunks = []
    while len(text) > limit:
        window = text[:limit]
        cut = window.rfind("\n\n")
        if cut > 0:
            cut += 2
        else:
            cut = window.rfind("\n")
            cut = cut + 1 if cut > 0 else window.rfind(" ") + 1
        if cut <= 0:
            cut = limit
        chunks.append(text[:cut])
        text = text[cut:]
    if text or not chunks:
        chunks.append(text)
    return chunks
