import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator


DEFAULT_TEMPLATE_QUESTIONS = (
    (
        "What documents are available?",
        "I can help you with any documents that have been uploaded to the system. "
        "You can ask me about specific files or request information from them.",
    ),
    (
        "How can you help me?",
        "I can assist you with document queries, answer questions based on uploaded files, "
        "and provide general information. Feel free to ask me anything!",
    ),
    (
        "What file formats do you support?",
        "I currently support PDF, Word documents (.doc/.docx), and Excel files (.xlsx). "
        "You can upload these formats and I will help you extract information from them.",
    ),
    (
        "What should I know first as a new-hire?",
        "As a new hire, you should familiarize yourself with the company policies, your team structure, "
        "and the tools you'll be using. Don't hesitate to ask questions and seek help from your colleagues. "
        "Use me as an assistant, not your main source of information.",
    ),
)

MAX_TEMPLATE_QUESTIONS = len(DEFAULT_TEMPLATE_QUESTIONS)
GREETING_KEY = "greeting_message"


class DuplicateDocumentError(ValueError):
    pass


class Database:
    def __init__(
        self,
        db_path: str,
        default_greeting: str = "Hello! I'm your AI assistant. How can I help you today?",
        default_updated_by: str = "Admin@email.com",
    ) -> None:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        self.default_greeting = default_greeting
        self.default_updated_by = default_updated_by

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def init_schema(self) -> None:
        with self.connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    filename TEXT UNIQUE NOT NULL,
                    original_name TEXT NOT NULL,
                    upload_date TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS chats (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    topic TEXT NOT NULL,
                    user_id TEXT NOT NULL DEFAULT 'anonymous',
                    message_count INTEGER NOT NULL DEFAULT 0,
                    total_likes INTEGER NOT NULL DEFAULT 0,
                    total_dislikes INTEGER NOT NULL DEFAULT 0,
                    created_date TEXT NOT NULL,
                    last_activity TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_id INTEGER NOT NULL,
                    sender TEXT NOT NULL,
                    text TEXT NOT NULL,
                    is_liked INTEGER DEFAULT NULL,
                    documents_referenced TEXT DEFAULT NULL,
                    timestamp TEXT NOT NULL,
                    FOREIGN KEY (chat_id) REFERENCES chats(id) ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS settings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    setting_key TEXT UNIQUE NOT NULL,
                    setting_value TEXT,
                    updated_by TEXT NOT NULL,
                    last_updated TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS template_questions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    question TEXT NOT NULL,
                    answer TEXT NOT NULL,
                    updated_by TEXT NOT NULL,
                    last_updated TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1
                );

                CREATE INDEX IF NOT EXISTS idx_messages_chat_id ON messages(chat_id);
                CREATE INDEX IF NOT EXISTS idx_chats_topic ON chats(topic);
                """
            )
            self._seed_defaults(conn)

    def _seed_defaults(self, conn: sqlite3.Connection) -> None:
        now = datetime.utcnow().isoformat()
        conn.execute(
            """
            INSERT OR IGNORE INTO settings(setting_key, setting_value, updated_by, last_updated)
            VALUES (?, ?, ?, ?)
            """,
            (GREETING_KEY, self.default_greeting, self.default_updated_by, now),
        )
        count = conn.execute("SELECT COUNT(*) AS c FROM template_questions").fetchone()["c"]
        if count < MAX_TEMPLATE_QUESTIONS:
            conn.executemany(
                """
                INSERT INTO template_questions(question, answer, updated_by, last_updated)
                VALUES (?, ?, ?, ?)
                """,
                [(q, a, self.default_updated_by, now) for q, a in DEFAULT_TEMPLATE_QUESTIONS[count:]],
            )

    # Documents

    def list_documents(self) -> list[sqlite3.Row]:
        with self.connect() as conn:
            return conn.execute("SELECT * FROM documents ORDER BY id ASC").fetchall()

    def get_document(self, document_id: int) -> sqlite3.Row | None:
        with self.connect() as conn:
            return conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,)).fetchone()

    def get_document_by_filename(self, filename: str) -> sqlite3.Row | None:
        with self.connect() as conn:
            return conn.execute("SELECT * FROM documents WHERE filename = ?", (filename,)).fetchone()

    def add_document(self, filename: str, original_name: str) -> int:
        try:
            with self.connect() as conn:
                cursor = conn.execute(
                    "INSERT INTO documents(filename, original_name, upload_date) VALUES (?, ?, ?)",
                    (filename, original_name, datetime.utcnow().isoformat()),
                )
                return int(cursor.lastrowid)
        except sqlite3.IntegrityError as exc:
            raise DuplicateDocumentError(f"Duplicate document: {filename}") from exc

    def rename_document(self, document_id: int, original_name: str) -> bool:
        with self.connect() as conn:
            cursor = conn.execute(
                "UPDATE documents SET original_name = ? WHERE id = ?",
                (original_name, document_id),
            )
            return cursor.rowcount > 0

    def replace_document_file(self, document_id: int, filename: str) -> bool:
        try:
            with self.connect() as conn:
                cursor = conn.execute(
                    "UPDATE documents SET filename = ?, upload_date = ? WHERE id = ?",
                    (filename, datetime.utcnow().isoformat(), document_id),
                )
                return cursor.rowcount > 0
        except sqlite3.IntegrityError as exc:
            raise DuplicateDocumentError(f"Duplicate document: {filename}") from exc

    def delete_document(self, document_id: int) -> bool:
        with self.connect() as conn:
            cursor = conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            return cursor.rowcount > 0

    # Chats and messages

    def get_chat_by_topic(self, topic: str) -> sqlite3.Row | None:
        with self.connect() as conn:
            return conn.execute(
                "SELECT * FROM chats WHERE topic = ? ORDER BY id ASC LIMIT 1",
                (topic,),
            ).fetchone()

    def get_chat(self, chat_id: int) -> sqlite3.Row | None:
        with self.connect() as conn:
            return conn.execute("SELECT * FROM chats WHERE id = ?", (chat_id,)).fetchone()

    def get_or_create_chat(self, topic: str) -> sqlite3.Row:
        existing = self.get_chat_by_topic(topic)
        if existing:
            return existing
        now = datetime.utcnow().isoformat()
        with self.connect() as conn:
            cursor = conn.execute(
                "INSERT INTO chats(topic, created_date, last_activity) VALUES (?, ?, ?)",
                (topic, now, now),
            )
            return conn.execute("SELECT * FROM chats WHERE id = ?", (cursor.lastrowid,)).fetchone()

    def list_chat_topics(self) -> list[sqlite3.Row]:
        with self.connect() as conn:
            return conn.execute("SELECT topic FROM chats ORDER BY created_date DESC, id DESC").fetchall()

    def list_chat_sessions(self) -> list[sqlite3.Row]:
        with self.connect() as conn:
            return conn.execute(
                """
                SELECT * FROM chats
                WHERE message_count > 0
                ORDER BY last_activity DESC, id DESC
                """
            ).fetchall()

    def add_message(
        self,
        chat_id: int,
        sender: str,
        text: str,
        documents_referenced: list[dict[str, Any]] | None = None,
    ) -> sqlite3.Row:
        now = datetime.utcnow().isoformat()
        refs = json.dumps(documents_referenced, ensure_ascii=False) if documents_referenced else None
        with self.connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO messages(chat_id, sender, text, documents_referenced, timestamp)
                VALUES (?, ?, ?, ?, ?)
                """,
                (chat_id, sender, text, refs, now),
            )
            conn.execute(
                "UPDATE chats SET message_count = message_count + 1, last_activity = ? WHERE id = ?",
                (now, chat_id),
            )
            return conn.execute("SELECT * FROM messages WHERE id = ?", (cursor.lastrowid,)).fetchone()

    def list_messages(self, chat_id: int) -> list[sqlite3.Row]:
        with self.connect() as conn:
            return conn.execute(
                "SELECT * FROM messages WHERE chat_id = ? ORDER BY timestamp ASC, id ASC",
                (chat_id,),
            ).fetchall()

    def get_message(self, message_id: int) -> sqlite3.Row | None:
        with self.connect() as conn:
            return conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()

    def set_reaction(self, message_id: int, is_liked: bool | None) -> sqlite3.Row | None:
        """Record a like (True), dislike (False) or cleared reaction (None) on a message.

        The owning chat's like/dislike totals are adjusted by the difference
        between the previous and the new reaction.
        """
        new_value = None if is_liked is None else int(bool(is_liked))
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()
            if not row:
                return None
            old_value = row["is_liked"]
            like_delta = int(new_value == 1) - int(old_value == 1)
            dislike_delta = int(new_value == 0) - int(old_value == 0)
            conn.execute("UPDATE messages SET is_liked = ? WHERE id = ?", (new_value, message_id))
            conn.execute(
                """
                UPDATE chats
                SET total_likes = total_likes + ?, total_dislikes = total_dislikes + ?, last_activity = ?
                WHERE id = ?
                """,
                (like_delta, dislike_delta, datetime.utcnow().isoformat(), row["chat_id"]),
            )
            return conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()

    # Settings

    def get_setting(self, key: str) -> sqlite3.Row | None:
        with self.connect() as conn:
            return conn.execute(
                "SELECT setting_value, updated_by, last_updated FROM settings WHERE setting_key = ?",
                (key,),
            ).fetchone()

    def set_setting(self, key: str, value: str, updated_by: str | None = None) -> str:
        now = datetime.utcnow().isoformat()
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO settings(setting_key, setting_value, updated_by, last_updated)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(setting_key) DO UPDATE SET
                    setting_value = excluded.setting_value,
                    updated_by = excluded.updated_by,
                    last_updated = excluded.last_updated
                """,
                (key, value, updated_by or self.default_updated_by, now),
            )
        return now

    # Template questions

    def list_template_questions(self) -> list[sqlite3.Row]:
        with self.connect() as conn:
            return conn.execute(
                "SELECT * FROM template_questions WHERE is_active = 1 ORDER BY last_updated DESC, id DESC"
            ).fetchall()

    def create_template_question(self, question: str, answer: str, updated_by: str | None = None) -> int:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO template_questions(question, answer, updated_by, last_updated)
                VALUES (?, ?, ?, ?)
                """,
                (question, answer, updated_by or self.default_updated_by, datetime.utcnow().isoformat()),
            )
            return int(cursor.lastrowid)

    def update_template_question(
        self, question_id: int, question: str, answer: str, updated_by: str | None = None
    ) -> bool:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                UPDATE template_questions
                SET question = ?, answer = ?, updated_by = ?, last_updated = ?
                WHERE id = ?
                """,
                (question, answer, updated_by or self.default_updated_by, datetime.utcnow().isoformat(), question_id),
            )
            return cursor.rowcount > 0

    def deactivate_template_question(self, question_id: int) -> bool:
        with self.connect() as conn:
            cursor = conn.execute(
                "UPDATE template_questions SET is_active = 0 WHERE id = ?",
                (question_id,),
            )
            return cursor.rowcount > 0
