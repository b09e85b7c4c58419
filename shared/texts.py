# Bot-facing copy, Telegram legacy Markdown (*bold*).

LANGUAGES = ("uz", "ru", "en")

LANGUAGE_BUTTONS = {
    "uz": "🇺🇿 O'zbekcha",
    "ru": "🇷🇺 Русский",
    "en": "🇬🇧 English",
}

TEXTS = {
    "uz": {
        "welcome": "👋 Assalomu alaykum! Iltimos, muloqot tilini tanlang:",
        "ask_contact": "📲 Iltimos, telefon raqamingizni yuborish uchun pastdagi tugmani bosing:",
        "share_contact_btn": "📱 Telefon raqamini yuborish",
        "searching": "🔍 Tekshirilmoqda...",
        "not_found": "❌ Kechirasiz, ushbu raqam bazada topilmadi. Iltimos, to'g'ri raqamdan foydalanayotganingizga ishonch hosil qiling yoki administratorga murojaat qiling.",
        "already_linked": "⚠️ Ushbu bemor boshqa Telegram hisobiga ulangan. Iltimos, administratorga murojaat qiling.",
        "success": "✅ Xush kelibsiz, *Hurmatli {name}*! Siz tizimga muvaffaqiyatli ulandingiz.",
        "reminder_title": "Eslatma! 🎗",
        "injection_msg": "Assalomu alaykum, *Hurmatli {name}*! Sizga inyeksiya belgilanganini eslatib o'tmoqchimiz.\n\n🗓 Sana: *{date}*\n⏰ Vaqt: *{time}*\n\nIltimos, o'z vaqtida keling. O'zingizni ehtiyot qiling! 😊",
        "check_btn": "📅 Jadvalni tekshirish",
        "schedule_header": "👤 *Hurmatli {name}*\n\n📋 *Sizning inyeksiya jadvalingiz:*\n\n",
        "schedule_item": "🗓 Sana: *{date}*\n⏰ Vaqt: *{time}*\n",
        "no_injection_found": "👤 *Hurmatli {name}*\n\nSizda hozircha rejalashtirilgan inyeksiyalar yo'q. 😊",
        "delete_not_found": "❌ O'chirish uchun xabar topilmadi.",
    },
    "ru": {
        "welcome": "👋 Здравствуйте! Пожалуйста, выберите язык:",
        "ask_contact": "📲 Пожалуйста, нажмите кнопку ниже, чтобы отправить свой номер телефона:",
        "share_contact_btn": "📱 Отправить номер",
        "searching": "🔍 Проверка...",
        "not_found": "❌ К сожалению, этот номер не найден в базе. Пожалуйста, убедитесь, что вы используете правильный номер, или обратитесь к администратору.",
        "already_linked": "⚠️ Этот пациент уже привязан к другому аккаунту Telegram. Обратитесь к администратору.",
        "success": "✅ Добро пожаловать, *Уважаемый(ая) {name}*! Вы успешно подключились к системе.",
        "reminder_title": "Напоминание! 🎗",
        "injection_msg": "Здравствуйте, *Уважаемый(ая) {name}*! Напоминаем вам о запланированной инъекции.\n\n🗓 Дата: *{date}*\n⏰ Время: *{time}*\n\nПожалуйста, приходите вовремя. Берегите себя! 😊",
        "check_btn": "📅 Проверить график",
        "schedule_header": "👤 *Уважаемый(ая) {name}*\n\n📋 *Ваш график инъекций:*\n\n",
        "schedule_item": "🗓 Дата: *{date}*\n⏰ Время: *{time}*\n",
        "no_injection_found": "👤 *Уважаемый(ая) {name}*\n\nУ вас пока нет запланированных инъекций. 😊",
        "delete_not_found": "❌ Сообщение для удаления не найдено.",
    },
    "en": {
        "welcome": "👋 Hello! Please choose your language:",
        "ask_contact": "📲 Please press the button below to share your phone number:",
        "share_contact_btn": "📱 Share Phone Number",
        "searching": "🔍 Checking...",
        "not_found": "❌ Sorry, this number was not found in our database. Please make sure you are using the correct number or contact an administrator.",
        "already_linked": "⚠️ This patient is already linked to another Telegram account. Please contact an administrator.",
        "success": "✅ Welcome, *Dear {name}*! You have successfully connected to the system.",
        "reminder_title": "Reminder! 🎗",
        "injection_msg": "Hello *Dear {name}*! Just a reminder about your scheduled injection.\n\n🗓 Date: *{date}*\n⏰ Time: *{time}*\n\nPlease come on time. Take care! 😊",
        "check_btn": "📅 Check Schedule",
        "schedule_header": "👤 *Dear {name}*\n\n📋 *Your injection schedule:*\n\n",
        "schedule_item": "🗓 Date: *{date}*\n⏰ Time: *{time}*\n",
        "no_injection_found": "👤 *Dear {name}*\n\nYou have no upcoming injections scheduled. 😊",
        "delete_not_found": "❌ No message found to delete.",
    },
}

NOT_OWN_CONTACT = "❌ Please send your own contact."
SYSTEM_ERROR = "⚠️ System error. Please try again later."
PROFILE_NOT_FOUND = "❌ Profilingiz topilmadi / Profile not found."
MALICIOUS_FILE_BLOCKED = (
    "❌ Xavfsizlik qoidalari: Zararli fayllar yuborish qat'iyan man etiladi! \n\n"
    "(Security Alert: Malicious file types are strictly blocked.)"
)

CHECK_BUTTONS = {TEXTS[lang]["check_btn"] for lang in LANGUAGES}


def t(lang: str | None, key: str, **kwargs) -> str:
    table = TEXTS.get(lang or "", TEXTS["uz"])
    template = table[key]
    return template.format(**kwargs) if kwargs else template
