import tkinter as tk
from tkinter import ttk
import datetime
import emoji
from typing import Optional

from common.messages import ConnectionState
from .session import SessionController

POLL_MS = 50   # how often queued network signals are pumped into the session

STATE_LABELS = {
    ConnectionState.IDLE: "Sin conexión",
    ConnectionState.CONNECTING: "Conectando...",
    ConnectionState.OPEN: "Conectado",
    ConnectionState.CLOSED: "Desconectado",
}


class ChatUI(tk.Tk):
    ''' Chat window. Implements the session's Renderer interface. '''
    def __init__(self, initial_name: str = ""):
        super().__init__()
        self.title("Chat")
        self.geometry("700x560")
        self.session = SessionController(self)

        self.columnconfigure(0, weight=1)
        self.rowconfigure(2, weight=1)

        header = tk.Label(self, text="Chat en tiempo real", bg="#a1ecf7", font=("Segoe UI", 16, "bold"))
        header.grid(row=0, column=0, sticky="ew", pady=(4,6))

        # nickname entry; identity follows every keystroke
        nick = ttk.Frame(self)
        nick.grid(row=1, column=0, sticky="ew", padx=8)
        nick.columnconfigure(1, weight=1)
        ttk.Label(nick, text="Nombre:").grid(row=0, column=0, padx=(0,6))
        self.nick_entry = ttk.Entry(nick)
        self.nick_entry.grid(row=0, column=1, sticky="ew")
        self.nick_entry.bind("<KeyRelease>", lambda e: self.session.set_identity(self.nick_entry.get()))
        if initial_name:
            self.nick_entry.insert(0, initial_name)
            self.session.set_identity(initial_name)
        self.status = ttk.Label(nick, text=STATE_LABELS[self.session.state], foreground="gray")
        self.status.grid(row=0, column=2, padx=(8,0))

        # message area
        frame = ttk.Frame(self)
        frame.grid(row=2, column=0, sticky="nsew", padx=8, pady=6)
        frame.rowconfigure(0, weight=1)
        frame.columnconfigure(0, weight=1)
        self.text = tk.Text(frame, state="disabled", wrap="word")
        self.text.grid(row=0, column=0, sticky="nsew")
        sb = ttk.Scrollbar(frame, orient="vertical", command=self.text.yview)
        sb.grid(row=0, column=1, sticky="ns")
        self.text.configure(yscrollcommand=sb.set)
        self.text.tag_config("own", justify="right", foreground="white", background="#3b82f6",
                             lmargin1=160, lmargin2=160, rmargin=8, spacing3=6)
        self.text.tag_config("peer", justify="left", foreground="#1f2937", background="#e5e7eb",
                             lmargin1=8, lmargin2=8, rmargin=160, spacing3=6)
        self.text.tag_config("label", font=("Segoe UI", 8, "bold"))
        self.text.tag_config("system", justify="center", foreground="gray", font=("Segoe UI", 9, "italic"),
                             spacing3=6)

        # compose area
        compose = ttk.Frame(self)
        compose.grid(row=3, column=0, sticky="ew", padx=8, pady=8)
        compose.columnconfigure(0, weight=1)
        self.entry = ttk.Entry(compose)
        self.entry.grid(row=0, column=0, sticky="ew", ipady=6)
        self.entry.bind("<Return>", lambda e: self.send_text())
        ttk.Button(compose, text="Enviar ➤", command=self.send_text, width=12).grid(row=0, column=1, padx=4, ipady=8)

        # Prefer a font with colored emoji on Windows
        try:
            emoji_font = ("Segoe UI Emoji", 11)
            self.entry.configure(font=emoji_font)
            self.text.configure(font=emoji_font)
        except tk.TclError:
            pass

        self.protocol("WM_DELETE_WINDOW", self.on_close)

    def start(self, url: str):
        self.session.connect(url)
        self.after(POLL_MS, self._pump)

    def _pump(self):
        try:
            self.session.transport.pump()
        finally:
            if self.session.state is not ConnectionState.CLOSED:
                self.after(POLL_MS, self._pump)

    def on_close(self):
        self.session.close()
        self.destroy()

    def send_text(self):
        msg = emoji.emojize(self.entry.get(), language="alias")
        if self.session.submit(msg):
            self.entry.delete(0, "end")

    def ts(self, sent_at: Optional[datetime.datetime] = None):
        ''' HH:MM:SS in local time; the current time when sent_at is unknown '''
        if sent_at is not None:
            try:
                return sent_at.astimezone().strftime("%H:%M:%S")
            except (OverflowError, OSError, ValueError):   # outside the platform's local-time range
                pass
        return datetime.datetime.now().strftime("%H:%M:%S")

    def append(self, text: str, *tags: str):
        self.text.configure(state="normal")
        self.text.insert("end", text + "\n", tags)
        self.text.configure(state="disabled")
        self.text.see("end")

    def _bubble(self, tag: str, sender: Optional[str], body: str, sent_at):
        self.text.configure(state="normal")
        # LegacyText frames have no sender: the bubble gets only the time
        label = f"{sender} · {self.ts(sent_at)}" if sender is not None else self.ts(sent_at)
        self.text.insert("end", label + "\n", (tag, "label"))
        self.text.insert("end", body + "\n", (tag,))
        self.text.configure(state="disabled")
        self.text.see("end")

    # --------- Renderer ----------
    def render_own_bubble(self, sender, body, sent_at):
        self._bubble("own", sender, body, sent_at)

    def render_peer_bubble(self, sender, body, sent_at):
        self._bubble("peer", sender, body, sent_at)

    def render_join_notice(self, text):
        self.append(text, "system")

    def render_leave_notice(self, text):
        self.append(text, "system")

    def render_system_notice(self, text):
        self.append(text, "system")

    def clear_identity_entry(self):
        # Only the field is cleared; the identity keeps its last value.
        self.nick_entry.delete(0, "end")

    def state_changed(self, state):
        self.status.configure(text=STATE_LABELS[state])
